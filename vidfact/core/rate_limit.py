"""
rate_limit.py — Global rate limiter instance.

Uses slowapi (a Starlette-compatible wrapper around the `limits` library).
Requests are keyed by client IP address. Only the analyze endpoint opts in:
it is the one that can trigger a multi-minute download + upload.

Usage in routes:
    @router.post("/analyze")
    @limiter.limit("10/minute")
    async def analyze(request: Request, payload: AnalyzeRequest):
        ...
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
