"""
JWT session token creation and verification.

Tokens use the JWS compact form (``header.payload.signature``, base64url
without padding) signed with HMAC-SHA256.  The verifier pins ``HS256``:
the ``alg`` header is compared against the expected value and is never
used to pick an algorithm.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Union

ALGORITHM = "HS256"
DEFAULT_EXPIRY_SECONDS = 3600

_HEADER = {"alg": ALGORITHM, "typ": "JWT"}

# Issued tokens are a few hundred bytes; anything far larger is not ours.
MAX_TOKEN_LENGTH = 4096


class FailureReason(str, Enum):
    MALFORMED = "Malformed"
    INVALID_SIGNATURE = "InvalidSignature"
    EXPIRED = "Expired"


@dataclass(frozen=True)
class IssuedToken:
    token: str
    issued_at: int
    expires_at: int

    @property
    def expiry_seconds(self) -> int:
        return self.expires_at - self.issued_at


@dataclass(frozen=True)
class Verified:
    subject_id: str
    identifier: str
    issued_at: int
    expires_at: int


@dataclass(frozen=True)
class VerificationFailure:
    reason: FailureReason


VerificationResult = Union[Verified, VerificationFailure]


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _decode_json(segment: str):
    """Decode one base64url JSON segment; ``None`` if it cannot be parsed."""
    try:
        return json.loads(_b64decode(segment))
    except (ValueError, binascii.Error, UnicodeError, RecursionError):
        return None


def _sign(secret: bytes, signing_input: bytes) -> str:
    return _b64encode(hmac.new(secret, signing_input, hashlib.sha256).digest())


def _secret_bytes(secret: str) -> bytes:
    if not secret:
        raise ValueError("token signing secret must not be empty")
    return secret.encode()


class TokenIssuer:
    """Create signed tokens carrying ``id`` (mirrored in ``sub``) / ``login`` / ``iat`` / ``exp``."""

    def __init__(
        self,
        secret: str,
        expiry_seconds: int = DEFAULT_EXPIRY_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = _secret_bytes(secret)
        self._expiry_seconds = expiry_seconds
        self._clock = clock

    def __repr__(self) -> str:
        return f"TokenIssuer(expiry_seconds={self._expiry_seconds})"

    @property
    def expiry_seconds(self) -> int:
        return self._expiry_seconds

    def issue(self, subject_id: str, identifier: str) -> IssuedToken:
        issued_at = int(self._clock())
        expires_at = issued_at + self._expiry_seconds
        payload = {
            "id": str(subject_id),
            "sub": str(subject_id),
            "login": identifier,
            "iat": issued_at,
            "exp": expires_at,
        }
        header_seg = _b64encode(json.dumps(_HEADER, separators=(",", ":")).encode())
        payload_seg = _b64encode(json.dumps(payload, separators=(",", ":")).encode())
        signing_input = f"{header_seg}.{payload_seg}".encode("ascii")
        token = f"{header_seg}.{payload_seg}.{_sign(self._secret, signing_input)}"
        return IssuedToken(token=token, issued_at=issued_at, expires_at=expires_at)


class TokenVerifier:
    """Check signature, algorithm and expiry, then recover the subject."""

    def __init__(self, secret: str, clock: Callable[[], float] = time.time) -> None:
        self._secret = _secret_bytes(secret)
        self._clock = clock

    def __repr__(self) -> str:
        return "TokenVerifier()"

    def verify(self, token: str) -> VerificationResult:
        """Never raises; every problem is reported as a ``VerificationFailure``."""
        if not isinstance(token, str) or not token.isascii() or len(token) > MAX_TOKEN_LENGTH:
            return VerificationFailure(FailureReason.MALFORMED)
        parts = token.split(".")
        if len(parts) != 3 or not all(parts):
            return VerificationFailure(FailureReason.MALFORMED)
        header_seg, payload_seg, signature_seg = parts

        header = _decode_json(header_seg)
        if not isinstance(header, dict):
            return VerificationFailure(FailureReason.MALFORMED)
        if header.get("alg") != ALGORITHM:
            return VerificationFailure(FailureReason.INVALID_SIGNATURE)

        signing_input = f"{header_seg}.{payload_seg}".encode("ascii")
        expected = _sign(self._secret, signing_input)
        if not hmac.compare_digest(signature_seg.encode("ascii"), expected.encode("ascii")):
            return VerificationFailure(FailureReason.INVALID_SIGNATURE)

        payload = _decode_json(payload_seg)
        if not isinstance(payload, dict):
            return VerificationFailure(FailureReason.MALFORMED)

        subject_id = payload.get("id", payload.get("sub"))
        identifier = payload.get("login")
        issued_at = payload.get("iat", 0)
        expires_at = payload.get("exp")
        if (
            not isinstance(subject_id, str)
            or not isinstance(identifier, str)
            or isinstance(expires_at, bool)
            or not isinstance(expires_at, int)
            or isinstance(issued_at, bool)
            or not isinstance(issued_at, int)
        ):
            return VerificationFailure(FailureReason.MALFORMED)

        if self._clock() >= expires_at:
            return VerificationFailure(FailureReason.EXPIRED)

        return Verified(
            subject_id=subject_id,
            identifier=identifier,
            issued_at=issued_at,
            expires_at=expires_at,
        )
