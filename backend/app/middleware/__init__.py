# Middleware package init
"""
EngageSphere Backend - Middleware Package
==========================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters!):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Rate Limit first: reject abusive clients before any gateway call
    2. Request ID: correlation id for logs and error envelopes
    3. Logging: one access line per request, with the id from step 2

    Note: the rate limiter runs before the request ID is assigned, so its
    429 envelopes carry an empty request_id.
"""
