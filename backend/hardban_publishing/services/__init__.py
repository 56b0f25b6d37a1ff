# Services package init
"""
HardbanRecords Publishing API - Services Layer
===============================================

What:  Persistence and counting behind the routes.

Service Inventory:
    - rate_limit_store: window counters (Redis with memory fallback)
    - RightsService:    publishing rights CRUD and coverage queries
    - ChapterService:   chapter CRUD with computed word counts

Routes stay thin: they pick mapping options and call a service. Services
own the session work and turn SQLAlchemy failures into DatabaseError.
"""
