"""
Cordova CMS Backend - Application Package
===========================================

Architecture Note:

    ┌─────────────────────────────────────┐
    │     Controllers (generated routes)  │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │        DAOs (one per resource)      │  ← CRUD intents → MongoDB ops
    ├─────────────────────────────────────┤
    │      Database (Motor client)        │  ← Connection pool lifecycle
    └─────────────────────────────────────┘

    A resource is declared by name and identifier field; the base
    controller derives its whole route table from those two values.
"""

__version__ = "1.0.0"
