"""
Gate Challenge Token Codec

Self-contained, signed, time-limited challenge tokens.

Wire format:
    base64url(payload_json) + "." + hex(HMAC-SHA256(secret, payload_json))

The payload is serialized canonically (fixed key order, compact
separators, UTF-8) and the signature is computed over those exact bytes.
Verification recomputes the signature over the decoded bytes, so no
server-side lookup is needed. Tokens are valid while now < exp.

Replay inside the validity window is not prevented here; callers that
need single-use tokens consume the nonce in an external registry.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Union


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SEPARATOR = "."
DEFAULT_TTL_SECONDS = 90
NONCE_BYTES = 8  # 64 bits, 16 hex chars; keeps the deployed token shape


# =============================================================================
# Types
# =============================================================================

class TokenInvalid(str, Enum):
    """Reason a token failed verification."""
    MALFORMED = "malformed"
    UNDECODABLE = "undecodable"
    BAD_SIGNATURE = "bad_signature"
    EXPIRED = "expired"


@dataclass(frozen=True)
class TokenPayload:
    """Decoded token body."""
    ip: str
    exp: int
    nonce: str
    redirect_params: Dict[str, str] = field(default_factory=dict)


# =============================================================================
# Canonical Serialization
# =============================================================================

def encode_payload(payload: TokenPayload) -> bytes:
    """Serialize a payload to its canonical byte form."""
    document = {
        "ip": payload.ip,
        "exp": payload.exp,
        "nonce": payload.nonce,
        "redirect_params": dict(payload.redirect_params),
    }
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def decode_payload(raw: bytes) -> TokenPayload:
    """
    Parse canonical payload bytes.

    Raises:
        ValueError: bytes are not UTF-8 JSON of the expected shape.
    """
    document = json.loads(raw.decode("utf-8"))
    if not isinstance(document, dict):
        raise ValueError("payload is not an object")

    ip = document.get("ip")
    exp = document.get("exp")
    nonce = document.get("nonce")
    params = document.get("redirect_params", {})

    if not isinstance(ip, str) or not isinstance(nonce, str):
        raise ValueError("payload ip/nonce must be strings")
    if isinstance(exp, bool) or not isinstance(exp, int):
        raise ValueError("payload exp must be an integer")
    if not isinstance(params, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in params.items()
    ):
        raise ValueError("payload redirect_params must map strings to strings")

    return TokenPayload(ip=ip, exp=exp, nonce=nonce, redirect_params=params)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii")


def _b64decode(text: str) -> bytes:
    raw = base64.b64decode(text.encode("ascii"), altchars=b"-_", validate=True)
    # Reject non-canonical encodings (e.g. altered padding bits)
    if _b64encode(raw) != text:
        raise ValueError("non-canonical base64")
    return raw


# =============================================================================
# Codec
# =============================================================================

class ChallengeTokenCodec:
    """
    Issues and verifies challenge tokens with a process-wide secret.

    The secret is fixed at construction and never leaves the process.
    `clock` returns epoch seconds and is injectable for tests.
    """

    def __init__(
        self,
        secret: Union[str, bytes],
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)
        self._clock = clock or time.time

    def _sign(self, raw: bytes) -> str:
        return hmac.new(self._secret, raw, hashlib.sha256).hexdigest()

    def issue(
        self,
        ip: str,
        redirect_params: Optional[Mapping[str, str]] = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> str:
        """Create a token binding `ip` and `redirect_params` for `ttl_seconds`."""
        payload = TokenPayload(
            ip=ip,
            exp=int(self._clock()) + int(ttl_seconds),
            nonce=secrets.token_hex(NONCE_BYTES),
            redirect_params=dict(redirect_params or {}),
        )
        raw = encode_payload(payload)
        return f"{_b64encode(raw)}{SEPARATOR}{self._sign(raw)}"

    def verify(self, token: Optional[str]) -> Union[TokenPayload, TokenInvalid]:
        """
        Validate a token. Fails closed at the first failing check:

            1. structure   -> MALFORMED
            2. decoding    -> UNDECODABLE
            3. signature   -> BAD_SIGNATURE
            4. expiry      -> EXPIRED
        """
        if not token or not isinstance(token, str):
            return TokenInvalid.MALFORMED

        parts = token.split(SEPARATOR)
        if len(parts) != 2 or not all(parts):
            return TokenInvalid.MALFORMED
        encoded, signature = parts

        try:
            raw = _b64decode(encoded)
            payload = decode_payload(raw)
        except (ValueError, UnicodeError, binascii.Error, RecursionError) as e:
            logger.debug(f"Token payload undecodable: {e}")
            return TokenInvalid.UNDECODABLE

        if not hmac.compare_digest(self._sign(raw).encode("ascii"), signature.encode("utf-8")):
            return TokenInvalid.BAD_SIGNATURE

        if self._clock() >= payload.exp:
            return TokenInvalid.EXPIRED

        return payload
