"""
HEARDROP Backend — API Routes Package
=======================================

What:  HTTP route handlers that accept requests and return responses.

Route Inventory:
    - auth.py:      /api/auth       signup, login, logout, me, password checks
    - brands.py:    /api/brands     brand directory (+ admin CRUD)
    - shops.py:     /api/shops      shop locator, clusters, facets (+ admin CRUD)
    - drops.py:     /api/drops      list, calendar, featured, affiliate tracking
    - spots.py:     /api/spots      Street Spotted feed, likes, moderation
    - journeys.py:  /api/journeys   plan, walking route, saved journeys, share text
    - me.py:        /api/me         profile, favorites, reminders, notifications
    - contact.py:   /api/contact    public contact form
    - admin.py:     /api/admin      audit log, lockouts, contact inbox, imports, exports, jobs
    - files.py:     /api/files      stored images
    - health.py:    /health         service health check

Routes stay thin: they read the request, call one service method and shape
the HTTP response. Business rules live in services.
"""
