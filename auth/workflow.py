"""
Credential workflow — register, login and session check.

Each method is independent and returns either a success object or an
``AuthFailure`` carrying an ``ErrorKind``; the HTTP layer maps kinds to
status codes.  "Unknown login", "wrong password" and every kind of bad
token collapse into the same ``InvalidCredentials`` failure so callers
cannot enumerate accounts.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from auth.jwt import TokenIssuer, TokenVerifier, VerificationFailure
from auth.password import DEFAULT_ROUNDS, hash_password, verify_password
from database.credentials import CredentialStore, DuplicateIdentifierError
from database.models import Credential

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid login or password."


class ErrorKind(str, Enum):
    MISSING_FIELD = "MissingField"
    DUPLICATE_IDENTIFIER = "DuplicateIdentifier"
    INVALID_CREDENTIALS = "InvalidCredentials"
    INTERNAL_FAILURE = "InternalFailure"


@dataclass(frozen=True)
class AuthFailure:
    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class Profile:
    subject_id: str
    identifier: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_credential(cls, credential: Credential) -> "Profile":
        return cls(
            subject_id=str(credential.subject_id),
            identifier=credential.identifier,
            created_at=credential.created_at,
            updated_at=credential.updated_at,
        )


@dataclass(frozen=True)
class Registered:
    subject_id: str
    identifier: str


@dataclass(frozen=True)
class LoggedIn:
    profile: Profile
    token: str
    expiry_seconds: int


@dataclass(frozen=True)
class SessionChecked:
    profile: Profile


RegisterResult = Union[Registered, AuthFailure]
LoginResult = Union[LoggedIn, AuthFailure]
CheckResult = Union[SessionChecked, AuthFailure]

_INVALID = AuthFailure(ErrorKind.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE)
_INTERNAL = AuthFailure(ErrorKind.INTERNAL_FAILURE, "Internal server error.")


class CredentialWorkflow:
    """Orchestrates hasher, token issuer/verifier and the credential store."""

    def __init__(
        self,
        store: CredentialStore,
        issuer: TokenIssuer,
        verifier: TokenVerifier,
        bcrypt_rounds: int = DEFAULT_ROUNDS,
    ) -> None:
        self._store = store
        self._issuer = issuer
        self._verifier = verifier
        self._bcrypt_rounds = bcrypt_rounds
        # Verified against for unknown identifiers so both rejections cost one bcrypt check.
        self._dummy_hash = hash_password("unused-placeholder", bcrypt_rounds)

    async def register(self, identifier: Optional[str], secret: Optional[str]) -> RegisterResult:
        if not identifier or not secret:
            logger.warning(
                "Register rejected: missing identifier or secret for %s", identifier or "<empty>"
            )
            return AuthFailure(ErrorKind.MISSING_FIELD, "identifier and secret are required.")

        duplicate = AuthFailure(ErrorKind.DUPLICATE_IDENTIFIER, "Identifier already registered.")
        try:
            if await self._store.get_by_identifier(identifier) is not None:
                logger.warning("Register rejected: duplicate identifier %s", identifier)
                return duplicate
            hashed = await asyncio.to_thread(hash_password, secret, self._bcrypt_rounds)
            credential = await self._store.insert(identifier, hashed)
        except DuplicateIdentifierError:
            # Lost a race with a concurrent registration.
            logger.warning("Register rejected: duplicate identifier %s (constraint)", identifier)
            return duplicate
        except Exception:
            logger.exception("Register failed: internal error for %s", identifier)
            return _INTERNAL

        logger.info("Registered %s (%s)", identifier, credential.subject_id)
        return Registered(subject_id=str(credential.subject_id), identifier=credential.identifier)

    async def login(self, identifier: Optional[str], secret: Optional[str]) -> LoginResult:
        if not identifier or not secret:
            logger.warning(
                "Login rejected: missing identifier or secret for %s", identifier or "<empty>"
            )
            return _INVALID

        try:
            credential = await self._store.get_by_identifier(identifier)
        except Exception:
            logger.exception("Login failed: internal error for %s", identifier)
            return _INTERNAL

        if credential is None:
            await asyncio.to_thread(verify_password, secret, self._dummy_hash)
            logger.warning("Login rejected: unknown identifier %s", identifier)
            return _INVALID
        matches = await asyncio.to_thread(verify_password, secret, credential.hashed_secret)
        if not matches:
            logger.warning("Login rejected: wrong secret for %s", identifier)
            return _INVALID

        issued = self._issuer.issue(str(credential.subject_id), credential.identifier)
        logger.info("Login succeeded for %s (%s)", identifier, credential.subject_id)
        return LoggedIn(
            profile=Profile(subject_id=str(credential.subject_id), identifier=credential.identifier),
            token=issued.token,
            expiry_seconds=issued.expiry_seconds,
        )

    async def check(self, token: Optional[str]) -> CheckResult:
        if not token:
            logger.warning("Check rejected: no token presented")
            return _INVALID

        result = self._verifier.verify(token)
        if isinstance(result, VerificationFailure):
            logger.warning("Check rejected: token %s", result.reason.value)
            return _INVALID

        try:
            credential = await self._store.get_by_id(result.subject_id)
        except Exception:
            logger.exception("Check failed: internal error for subject %s", result.subject_id)
            return _INTERNAL

        if credential is None:
            logger.warning(
                "Check rejected: valid token but subject %s no longer exists", result.subject_id
            )
            return _INVALID

        logger.info("Check succeeded for %s", credential.identifier)
        return SessionChecked(profile=Profile.from_credential(credential))
