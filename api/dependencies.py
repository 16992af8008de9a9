"""
FastAPI dependencies (shared across routes).
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, Request

from auth.workflow import CredentialWorkflow
from config.settings import Settings


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_workflow(request: Request) -> CredentialWorkflow:
    """The workflow built once in ``create_app``."""
    return request.app.state.workflow


async def get_presented_token(
    request: Request,
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> Optional[str]:
    """
    Token from the session cookie, falling back to an
    ``Authorization: Bearer`` header for non-browser callers.
    """
    token = request.cookies.get(get_settings(request).cookie_name)
    if token:
        return token
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return None
