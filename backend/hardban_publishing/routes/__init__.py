# Routes package init
"""
HardbanRecords Publishing API - Route Handlers
===============================================

Route Inventory:
    - health.py:    GET  /health
    - rights.py:    /api/publishing/rights..., publication rights + coverage
    - chapters.py:  /api/publishing/chapters..., publication table of contents
    - webhooks.py:  POST /api/publishing/webhooks/{store}

Every publishing route declares its rate limit class first and its role
guard second in `dependencies=[...]`, so a throttled caller is rejected
before its token is checked against the route's roles.
"""
