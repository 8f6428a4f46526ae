"""FastAPI dependency injection for values stored on app.state."""

from __future__ import annotations

from fastapi import Request

from automai.config import Settings


def get_settings(request: Request) -> Settings:
    """Get the Settings instance from app state."""
    return request.app.state.settings
