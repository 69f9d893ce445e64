# Routes package init
"""
Cordova CMS Backend - Fixed Routes
====================================

Routes that are not generated per resource:
    - health.py:  GET /health   (service health check)

Resource CRUD routes are generated by cms.controllers.
"""
