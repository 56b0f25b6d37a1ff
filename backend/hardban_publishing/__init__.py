"""
HardbanRecords Lab Publishing API - Package Initializer
=======================================================

What: The publishing backend (rights, chapters, store webhooks) of HardbanRecords Lab.
Who:  Imported by uvicorn (`hardban_publishing.main:app`), Alembic and pytest.

Layers:

    ┌─────────────────────────────────────┐
    │  Middleware (request id, access     │  ← CORS gate, auth context
    │  log, CORS policy, auth context)    │
    ├─────────────────────────────────────┤
    │  Routes + rate limit dependencies   │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │  Services                           │  ← persistence + mapper calls
    ├─────────────────────────────────────┤
    │  Mappers (pure)                     │  ← row shape ⇄ API shape
    ├─────────────────────────────────────┤
    │  Models / Database                  │  ← async SQLAlchemy
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
