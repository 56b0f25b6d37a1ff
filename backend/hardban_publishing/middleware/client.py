"""Client identity helpers shared by the middleware chain."""

from starlette.requests import Request


def get_client_ip(request: Request, trust_proxy: bool = False) -> str:
    """
    Best-effort client IP.

    Behind a proxy (TRUST_PROXY=true) the first X-Forwarded-For hop is used;
    otherwise the socket peer. Returns "unknown" when neither is available.
    Callers pass the flag from the settings the app was built with.
    """
    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
