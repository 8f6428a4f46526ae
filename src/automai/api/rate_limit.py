"""Shared rate limiter for routes that trigger outbound calls to tenant gateways.

app.py attaches it to app.state and toggles it from settings; routes apply it
with @limiter.limit().
"""

from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

CONNECT_LIMIT = "10/minute"

limiter = Limiter(key_func=get_remote_address)
