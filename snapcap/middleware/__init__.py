"""
SnapCap Backend: Middleware Package
=====================================

Middleware Chain (order matters!):
    Request → [CORS] → [Request ID] → [Logging] → [Rate Limit] → [GZip] → Route

    1. Request ID: correlation id for logs and error bodies, 429s included
    2. Logging: method, path, status, duration with the request id
    3. Rate Limit: reject abusive clients before any route work

WebSocket connections bypass all three (BaseHTTPMiddleware only sees HTTP).
"""
