"""
Token service: issue, verify, refresh, revoke.

Handles:
- Access/refresh pair issuance (nothing stored at issue time)
- Access token verification for request authentication
- Refresh with rotation and reuse detection
- Revocation on logout

Checks run in a fixed order so each failure has one cause:
signature -> kind -> expiry -> revocation -> subject -> password-change cutoff.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from flask import request

from core.timestamps import Clock, SystemClock

from .codec import TokenCodec
from .errors import (
    TokenExpired,
    TokenInvalid,
    TokenPrecedesPasswordChange,
    TokenRevoked,
    TokenSubjectInvalid,
    TokenWrongKind,
)
from .revocation import RevocationRegistry, RevocationUnavailable
from .store import CredentialStore
from .types import TokenClaims, TokenKind, TokenPair, User

logger = logging.getLogger(__name__)


def get_token_from_request() -> Optional[str]:
    """Extract JWT token from Authorization header.

    Returns:
        Token string or None if not present
    """
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


class TokenService:
    """Stateless token operations over the codec, registry and credential store."""

    def __init__(
        self,
        codec: TokenCodec,
        registry: RevocationRegistry,
        store: CredentialStore,
        clock: Clock = None,
        access_lifetime: timedelta = timedelta(hours=24),
        refresh_lifetime: timedelta = timedelta(days=7),
    ):
        self.codec = codec
        self.registry = registry
        self.store = store
        self.clock = clock or SystemClock()
        self.access_lifetime = access_lifetime
        self.refresh_lifetime = refresh_lifetime

    @property
    def access_expires_in_ms(self) -> int:
        return int(self.access_lifetime.total_seconds() * 1000)

    # =========================================================================
    # Issue
    # =========================================================================

    def issue(self, user: User) -> TokenPair:
        """Mint an access/refresh pair for the user."""
        access_token, _ = self.codec.encode(user.username, TokenKind.ACCESS, self.access_lifetime)
        refresh_token, _ = self.codec.encode(user.username, TokenKind.REFRESH, self.refresh_lifetime)
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            access_expires_in_ms=self.access_expires_in_ms,
        )

    # =========================================================================
    # Verify
    # =========================================================================

    def verify_access(self, token: str) -> TokenClaims:
        """Verify an access token. Password expiry is not considered here."""
        claims, _ = self.authenticate(token)
        return claims

    def authenticate(self, token: str) -> tuple[TokenClaims, User]:
        """Verify an access token and resolve its subject.

        Raises:
            TokenMalformed, TokenWrongKind, TokenExpired, TokenRevoked,
            TokenSubjectInvalid, TokenPrecedesPasswordChange
        """
        claims = self.codec.decode(token)
        if claims.kind != TokenKind.ACCESS:
            raise TokenWrongKind(f"Expected access token, got {claims.kind.value}")
        self._check_live(claims)
        user = self._resolve_subject(claims)
        return claims, user

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair, revoking the old refresh token.

        A correctly signed access token presented here is revoked before
        rejection, since a client never legitimately sends one to refresh.
        """
        claims = self.codec.decode(refresh_token)
        if claims.kind != TokenKind.REFRESH:
            logger.warning(f"Access token presented for refresh (subject={claims.sub}); revoking it")
            self.revoke(claims.jti, claims.exp)
            raise TokenWrongKind(f"Expected refresh token, got {claims.kind.value}")

        self._check_live(claims)
        user = self._resolve_subject(claims)

        # Rotation: the presented refresh token is single use
        self.revoke(claims.jti, claims.exp)
        logger.info(f"Token refreshed for user: {user.username}")
        return self.issue(user)

    def _check_live(self, claims: TokenClaims):
        if self.clock.now() >= claims.exp:
            raise TokenExpired(f"Token expired at {claims.exp.isoformat()}")
        if self.registry.is_revoked(claims.jti):
            raise TokenRevoked(f"Token {claims.jti} has been revoked")

    def _resolve_subject(self, claims: TokenClaims) -> User:
        user = self.store.get_user(claims.sub)
        if user is None or not user.enabled or user.account_locked:
            raise TokenSubjectInvalid(f"Token subject not usable: {claims.sub}")

        # Cutoff rule, at the one-second resolution tokens carry
        changed_at = user.last_password_change_at
        if changed_at is not None and claims.iat.timestamp() < int(changed_at.timestamp()):
            raise TokenPrecedesPasswordChange(
                f"Token issued {claims.iat.isoformat()} before password change {changed_at.isoformat()}"
            )
        return user

    # =========================================================================
    # Revoke
    # =========================================================================

    def revoke(self, jti: str, expires_at: datetime):
        """Record a revocation that lives exactly as long as the token would."""
        if expires_at <= self.clock.now():
            return
        self.registry.revoke(jti, expires_at)

    def revoke_token(self, token: str) -> bool:
        """Revoke a token by value. Expired tokens are accepted and ignored.

        Returns:
            True if the token was signed by us and is now revoked
        """
        claims = self.codec.decode(token)
        self.revoke(claims.jti, claims.exp)
        return True

    def logout(self, access_token: Optional[str], refresh_token: Optional[str] = None):
        """Revoke whatever tokens the client handed back. Never fails."""
        for token in (access_token, refresh_token):
            if not token:
                continue
            try:
                self.revoke_token(token)
            except TokenInvalid:
                logger.debug("Ignoring unusable token on logout")
            except RevocationUnavailable as e:
                logger.warning(f"Logout revocation not recorded: {e}")
