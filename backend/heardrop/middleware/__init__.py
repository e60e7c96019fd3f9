"""
HEARDROP Backend — Middleware Package
=======================================

Middleware Chain (order matters!):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    1. Rate Limit first: reject abusive clients before any processing
    2. Request ID: correlation ID for every later log line
    3. Logging: access log with status and duration

`rate_limit.SlidingWindowLimiter` is also used directly by the
password-check and affiliate-tracking services for their own budgets.
"""
