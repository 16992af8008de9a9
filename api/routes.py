"""
Service-level routes (liveness).
"""

from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request) -> Dict[str, str]:
    return {"status": "OK", "service": request.app.state.settings.service_name}
