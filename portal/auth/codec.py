"""
JWT signing and signature verification.

The codec knows nothing about users, revocation or the current time beyond
stamping iat/exp. Expiry is checked by TokenService against the injected
clock, so decode() only proves integrity and structure.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone

import jwt

from core.timestamps import Clock, SystemClock

from .errors import TokenMalformed
from .types import TokenClaims, TokenKind

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["sub", "type", "jti", "iat", "exp"]

_DECODE_OPTIONS = {
    # Time-based claims are evaluated by the caller against its clock
    "verify_exp": False,
    "verify_iat": False,
    "verify_nbf": False,
    "require": REQUIRED_CLAIMS,
}


class TokenCodec:
    """Encodes and decodes signed access/refresh tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256", clock: Clock = None):
        self._secret = secret
        self._algorithm = algorithm
        self._clock = clock or SystemClock()

    def encode(self, subject: str, kind: TokenKind, lifetime: timedelta) -> tuple[str, TokenClaims]:
        """Mint a token with a fresh jti.

        iat and exp are whole seconds (the JWT NumericDate resolution), so the
        returned claims match what decode() will produce for the same token.

        Returns:
            (encoded_token, claims) tuple
        """
        issued = int(self._clock.now().timestamp())
        expires = issued + int(lifetime.total_seconds())
        jti = str(uuid.uuid4())

        payload = {
            "sub": subject,
            "type": kind.value,
            "jti": jti,
            "iat": issued,
            "exp": expires,
        }
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        claims = TokenClaims(
            sub=subject,
            kind=kind,
            jti=jti,
            iat=datetime.fromtimestamp(issued, tz=timezone.utc),
            exp=datetime.fromtimestamp(expires, tz=timezone.utc),
        )
        return token, claims

    def decode(self, token: str) -> TokenClaims:
        """Verify the signature and claim structure.

        Raises:
            TokenMalformed: bad signature, wrong algorithm, missing or
                mistyped claims, or not a JWT at all
        """
        if not token:
            raise TokenMalformed("Empty token")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options=_DECODE_OPTIONS,
            )
        except jwt.InvalidTokenError as e:
            raise TokenMalformed(f"Token rejected: {type(e).__name__}")

        try:
            kind = TokenKind(payload["type"])
            subject = payload["sub"]
            iat = int(payload["iat"])
            exp = int(payload["exp"])
        except (ValueError, TypeError) as e:
            raise TokenMalformed(f"Token claims invalid: {e}")

        if not isinstance(subject, str) or not subject:
            raise TokenMalformed("Token subject missing")

        return TokenClaims(
            sub=subject,
            kind=kind,
            jti=str(payload["jti"]),
            iat=datetime.fromtimestamp(iat, tz=timezone.utc),
            exp=datetime.fromtimestamp(exp, tz=timezone.utc),
        )
