# Middleware package init
"""
HardbanRecords Publishing API - Middleware Package
===================================================

What:  Request-wide concerns shared by every publishing route.

Middleware chain (outermost first):
    Request → [Request ID] → [Access Log] → [CORS Gate] → [Auth Context]
            → route dependencies: [Rate Limiter] → [Role Guard] → Route Handler

    1. Request ID first: every later log line and error body carries it
    2. Access Log: sees the final status, including 403 and 429 answers
    3. CORS Gate: rejected origins stop here and never reach auth or handlers
    4. Auth Context: attaches request.state.user, never rejects
    5. Rate limits run as route dependencies, so each route picks its class

    Responses travel back through the same chain in reverse.
"""
