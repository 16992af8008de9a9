"""
Auth API routes — register, login, check.

Thin adapter: wire bodies become ``CredentialWorkflow`` calls and the
returned result objects become JSON responses.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from api.dependencies import get_presented_token, get_settings, get_workflow
from auth.workflow import AuthFailure, CredentialWorkflow, ErrorKind, Profile
from config.settings import Settings

router = APIRouter(tags=["auth"])

_STATUS_BY_KIND = {
    ErrorKind.MISSING_FIELD: status.HTTP_400_BAD_REQUEST,
    ErrorKind.DUPLICATE_IDENTIFIER: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INTERNAL_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


# ── Request / response schemas ─────────────────────────────────────────


class CredentialsRequest(BaseModel):
    identifier: Optional[str] = None
    secret: Optional[str] = None


class ProfileOut(BaseModel):
    subject_id: str
    identifier: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RegisterResponse(BaseModel):
    subject_id: str
    identifier: str


class LoginResponse(BaseModel):
    profile: ProfileOut
    token: str
    expiry_seconds: int


class CheckResponse(BaseModel):
    profile: ProfileOut


class ErrorResponse(BaseModel):
    error: str
    message: str


# ── Helpers ────────────────────────────────────────────────────────────


async def read_credentials(request: Request) -> CredentialsRequest:
    """
    Parse the body leniently: anything that is not a JSON object with
    string fields counts as missing fields, which the workflow reports.
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return CredentialsRequest()
    if not isinstance(body, dict):
        return CredentialsRequest()
    try:
        return CredentialsRequest.model_validate(body)
    except ValidationError:
        return CredentialsRequest()


def _failure_response(failure: AuthFailure) -> JSONResponse:
    body = ErrorResponse(error=failure.kind.value, message=failure.message)
    return JSONResponse(status_code=_STATUS_BY_KIND[failure.kind], content=body.model_dump())


def _profile_out(profile: Profile) -> ProfileOut:
    return ProfileOut(
        subject_id=profile.subject_id,
        identifier=profile.identifier,
        created_at=profile.created_at,
        updated_at=profile.updated_at,
    )


def _json(model: BaseModel, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    content: Dict[str, Any] = model.model_dump(mode="json", exclude_none=True)
    return JSONResponse(status_code=status_code, content=content)


# ── Endpoints ──────────────────────────────────────────────────────────


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=RegisterResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def register(
    req: CredentialsRequest = Depends(read_credentials),
    workflow: CredentialWorkflow = Depends(get_workflow),
) -> JSONResponse:
    """Register a new identifier / secret pair."""
    result = await workflow.register(req.identifier, req.secret)
    if isinstance(result, AuthFailure):
        return _failure_response(result)
    return _json(
        RegisterResponse(subject_id=result.subject_id, identifier=result.identifier),
        status_code=status.HTTP_201_CREATED,
    )


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def login(
    req: CredentialsRequest = Depends(read_credentials),
    workflow: CredentialWorkflow = Depends(get_workflow),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Login; the token is returned in the body and as an http-only cookie."""
    result = await workflow.login(req.identifier, req.secret)
    if isinstance(result, AuthFailure):
        return _failure_response(result)

    response = _json(
        LoginResponse(
            profile=_profile_out(result.profile),
            token=result.token,
            expiry_seconds=result.expiry_seconds,
        )
    )
    response.set_cookie(
        settings.cookie_name,
        result.token,
        max_age=result.expiry_seconds,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
        path="/",
    )
    return response


@router.post(
    "/check",
    response_model=CheckResponse,
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def check(
    token: Optional[str] = Depends(get_presented_token),
    workflow: CredentialWorkflow = Depends(get_workflow),
) -> JSONResponse:
    """Validate the presented session token and return the profile."""
    result = await workflow.check(token)
    if isinstance(result, AuthFailure):
        return _failure_response(result)
    return _json(CheckResponse(profile=_profile_out(result.profile)))
