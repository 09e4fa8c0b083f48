from __future__ import annotations

from fastapi import Request

from ..session import LingoLogSession


def get_session(request: Request) -> LingoLogSession:
    """FastAPI dependency returning the process-wide session."""

    return request.app.state.session
