"""Per-request JWT signing for the custody provider API.

Every outbound call carries a short-lived RS256 token binding the request
path and a SHA-256 hash of the exact body bytes. A fresh UUID nonce makes
each token single use.
"""

import hashlib
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from jose import jwt
from jose.exceptions import JOSEError

logger = logging.getLogger(__name__)

TOKEN_LIFETIME_SECONDS = 55
ALLOWED_METHODS = ("GET", "POST", "PUT")


@dataclass(frozen=True)
class SignedRequest:
    method: str
    path: str
    body_hash: str
    issued_at: int
    expires_at: int
    nonce: str
    subject: str
    token: str


def canonical_body(body: Any) -> str:
    """Serialize a request body the way it is sent on the wire."""
    if body is None:
        body = {}
    if isinstance(body, (bytes, bytearray)):
        return body.decode("utf-8")
    if isinstance(body, str):
        return body
    return json.dumps(body, sort_keys=True, separators=(",", ":"))


def hash_body(body: Any) -> str:
    return hashlib.sha256(canonical_body(body).encode("utf-8")).hexdigest()


class RequestSigner:
    """Builds single-use signed tokens with the custody API private key."""

    def __init__(
        self,
        key_id: str | None,
        private_key: str | None,
        token_lifetime: int = TOKEN_LIFETIME_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.key_id = key_id
        self._private_key = private_key
        self.token_lifetime = token_lifetime
        self._clock = clock

    @property
    def can_sign(self) -> bool:
        return bool(self.key_id and self._private_key)

    def sign(self, method: str, path: str, body: Any = None) -> SignedRequest | None:
        """Sign a request. Returns None when no key material is configured.

        Args:
            method: GET, POST or PUT.
            path: API path including any query string, e.g. "/v1/vault/accounts".
            body: Request body. Strings are hashed verbatim; structures are
                canonically serialized first. Defaults to an empty object.
        """
        method = method.upper()
        if method not in ALLOWED_METHODS:
            raise ValueError(f"Unsupported method for signing: {method}")
        if not path:
            raise ValueError("path must not be empty")

        if not self.can_sign:
            logger.warning("Request signing unavailable: key id or private key missing")
            return None

        issued_at = int(self._clock())
        expires_at = issued_at + self.token_lifetime
        nonce = str(uuid.uuid4())
        body_hash = hash_body(body)
        claims = {
            "uri": path,
            "nonce": nonce,
            "iat": issued_at,
            "exp": expires_at,
            "sub": self.key_id,
            "bodyHash": body_hash,
        }
        try:
            token = jwt.encode(claims, self._private_key, algorithm="RS256")
        except JOSEError as e:
            logger.error(f"Failed to sign {method} {path}: {e}")
            return None

        return SignedRequest(
            method=method,
            path=path,
            body_hash=body_hash,
            issued_at=issued_at,
            expires_at=expires_at,
            nonce=nonce,
            subject=self.key_id,
            token=token,
        )
