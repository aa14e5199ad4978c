"""Tests for token issue, verification, refresh rotation and revocation."""

from datetime import timedelta

import jwt
import pytest

from core.timestamps import FixedClock
from helpers import OTHER_PASSWORD, PASSWORD, START
from portal.auth import (
    TokenCodec,
    TokenExpired,
    TokenKind,
    TokenMalformed,
    TokenPrecedesPasswordChange,
    TokenRevoked,
    TokenSubjectInvalid,
    TokenWrongKind,
)


@pytest.fixture
def alice(make_user):
    return make_user("alice")


class TestTokenCodec:
    def test_round_trip_claims(self, clock):
        codec = TokenCodec("k" * 40, clock=clock)
        token, claims = codec.encode("alice", TokenKind.ACCESS, timedelta(hours=1))
        decoded = codec.decode(token)
        assert decoded == claims
        assert decoded.iat == START
        assert decoded.exp == START + timedelta(hours=1)

    def test_every_token_gets_its_own_jti(self, clock):
        codec = TokenCodec("k" * 40, clock=clock)
        first, _ = codec.encode("alice", TokenKind.ACCESS, timedelta(hours=1))
        second, _ = codec.encode("alice", TokenKind.ACCESS, timedelta(hours=1))
        assert first != second
        assert codec.decode(first).jti != codec.decode(second).jti

    def test_foreign_signature_rejected(self, clock):
        ours = TokenCodec("k" * 40, clock=clock)
        theirs = TokenCodec("z" * 40, clock=clock)
        token, _ = theirs.encode("alice", TokenKind.ACCESS, timedelta(hours=1))
        with pytest.raises(TokenMalformed):
            ours.decode(token)

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
    def test_garbage_rejected(self, clock, token):
        with pytest.raises(TokenMalformed):
            TokenCodec("k" * 40, clock=clock).decode(token)

    def test_missing_kind_claim_rejected(self, clock):
        payload = {"sub": "alice", "jti": "x", "iat": 1, "exp": 2}
        token = jwt.encode(payload, "k" * 40, algorithm="HS256")
        with pytest.raises(TokenMalformed):
            TokenCodec("k" * 40, clock=clock).decode(token)

    def test_unknown_kind_rejected(self, clock):
        payload = {"sub": "alice", "type": "session", "jti": "x", "iat": 1, "exp": 2}
        token = jwt.encode(payload, "k" * 40, algorithm="HS256")
        with pytest.raises(TokenMalformed):
            TokenCodec("k" * 40, clock=clock).decode(token)

    def test_expired_token_still_decodes(self, clock):
        """Expiry belongs to the token service, not the codec."""
        codec = TokenCodec("k" * 40, clock=FixedClock(START - timedelta(days=30)))
        token, _ = codec.encode("alice", TokenKind.ACCESS, timedelta(hours=1))
        assert TokenCodec("k" * 40, clock=clock).decode(token).sub == "alice"


class TestVerifyAccess:
    def test_fresh_access_token_verifies(self, services, alice):
        pair = services.tokens.issue(alice)
        claims, user = services.tokens.authenticate(pair.access_token)
        assert claims.sub == "alice"
        assert claims.kind == TokenKind.ACCESS
        assert user.username == "alice"
        assert pair.token_type == "Bearer"
        assert pair.access_expires_in_ms == 24 * 3600 * 1000

    def test_valid_until_one_second_before_exp(self, services, clock, alice):
        pair = services.tokens.issue(alice)
        clock.advance(hours=24, seconds=-1)
        assert services.tokens.verify_access(pair.access_token).sub == "alice"

    def test_expired_exactly_at_exp(self, services, clock, alice):
        pair = services.tokens.issue(alice)
        clock.advance(hours=24)
        with pytest.raises(TokenExpired):
            services.tokens.verify_access(pair.access_token)

    def test_refresh_token_rejected_as_access(self, services, alice):
        pair = services.tokens.issue(alice)
        with pytest.raises(TokenWrongKind):
            services.tokens.verify_access(pair.refresh_token)

    def test_revoked_token_rejected(self, services, alice):
        pair = services.tokens.issue(alice)
        services.tokens.revoke_token(pair.access_token)
        with pytest.raises(TokenRevoked):
            services.tokens.verify_access(pair.access_token)

    def test_unknown_subject_rejected(self, services, clock, settings):
        codec = TokenCodec(settings.auth.jwt_secret.get_secret_value(), clock=clock)
        token, _ = codec.encode("ghost", TokenKind.ACCESS, timedelta(hours=1))
        with pytest.raises(TokenSubjectInvalid):
            services.tokens.verify_access(token)

    def test_disabled_subject_rejected_as_malformed(self, services, alice):
        pair = services.tokens.issue(alice)
        services.identity.set_enabled("alice", False)
        with pytest.raises(TokenMalformed):
            services.tokens.verify_access(pair.access_token)

    def test_locked_subject_rejected(self, services, alice):
        pair = services.tokens.issue(alice)
        services.store.increment_failed_login("alice", 1)
        with pytest.raises(TokenSubjectInvalid):
            services.tokens.verify_access(pair.access_token)


class TestPasswordChangeCutoff:
    def test_token_from_same_second_as_change_accepted(self, services, alice):
        """alice was created (password set) at START; a token minted at START is fine."""
        pair = services.tokens.issue(alice)
        assert services.tokens.verify_access(pair.access_token).sub == "alice"

    def test_tokens_before_change_rejected_after_accepted(self, services, clock, alice):
        before = services.tokens.issue(alice)

        clock.advance(seconds=1)
        services.identity.change_password("alice", PASSWORD, OTHER_PASSWORD)
        with pytest.raises(TokenPrecedesPasswordChange):
            services.tokens.verify_access(before.access_token)

        same_second = services.tokens.issue(services.store.require_user("alice"))
        assert services.tokens.verify_access(same_second.access_token).sub == "alice"

        clock.advance(seconds=1)
        after = services.tokens.issue(services.store.require_user("alice"))
        assert services.tokens.verify_access(after.access_token).sub == "alice"

    def test_refresh_token_before_change_rejected(self, services, clock, alice):
        pair = services.tokens.issue(alice)
        clock.advance(seconds=1)
        services.identity.change_password("alice", PASSWORD, OTHER_PASSWORD)
        with pytest.raises(TokenPrecedesPasswordChange):
            services.tokens.refresh(pair.refresh_token)

    def test_admin_reset_moves_cutoff(self, services, clock, alice):
        pair = services.tokens.issue(alice)
        clock.advance(minutes=5)
        services.identity.admin_reset_password("alice", OTHER_PASSWORD)
        with pytest.raises(TokenPrecedesPasswordChange):
            services.tokens.verify_access(pair.access_token)


class TestRefresh:
    def test_refresh_rotates_pair(self, services, clock, alice):
        pair = services.tokens.issue(alice)
        clock.advance(minutes=10)
        new_pair = services.tokens.refresh(pair.refresh_token)
        assert new_pair.refresh_token != pair.refresh_token
        assert services.tokens.verify_access(new_pair.access_token).sub == "alice"

    def test_old_refresh_token_single_use(self, services, alice):
        pair = services.tokens.issue(alice)
        services.tokens.refresh(pair.refresh_token)
        with pytest.raises(TokenRevoked):
            services.tokens.refresh(pair.refresh_token)

    def test_access_token_presented_for_refresh_is_revoked(self, services, alice):
        pair = services.tokens.issue(alice)
        with pytest.raises(TokenWrongKind):
            services.tokens.refresh(pair.access_token)
        with pytest.raises(TokenRevoked):
            services.tokens.verify_access(pair.access_token)

    def test_expired_refresh_token_rejected(self, services, clock, alice):
        pair = services.tokens.issue(alice)
        clock.advance(days=7)
        with pytest.raises(TokenExpired):
            services.tokens.refresh(pair.refresh_token)

    def test_refresh_for_disabled_user_rejected(self, services, alice):
        pair = services.tokens.issue(alice)
        services.identity.set_enabled("alice", False)
        with pytest.raises(TokenSubjectInvalid):
            services.tokens.refresh(pair.refresh_token)


class TestRevocation:
    def test_logout_revokes_both_tokens(self, services, alice):
        pair = services.tokens.issue(alice)
        services.tokens.logout(pair.access_token, pair.refresh_token)
        with pytest.raises(TokenRevoked):
            services.tokens.verify_access(pair.access_token)
        with pytest.raises(TokenRevoked):
            services.tokens.refresh(pair.refresh_token)

    def test_logout_is_idempotent(self, services, alice):
        pair = services.tokens.issue(alice)
        services.tokens.logout(pair.access_token)
        services.tokens.logout(pair.access_token)
        with pytest.raises(TokenRevoked):
            services.tokens.verify_access(pair.access_token)

    def test_logout_ignores_unusable_tokens(self, services):
        services.tokens.logout("garbage", None)
        services.tokens.logout(None, None)

    def test_expired_token_not_recorded(self, services, clock, alice):
        pair = services.tokens.issue(alice)
        jti = services.tokens.codec.decode(pair.access_token).jti
        clock.advance(hours=25)
        services.tokens.revoke_token(pair.access_token)
        assert services.revocation.is_revoked(jti) is False

    def test_revocation_purged_after_natural_expiry(self, services, clock, alice):
        pair = services.tokens.issue(alice)
        jti = services.tokens.codec.decode(pair.access_token).jti
        services.tokens.revoke_token(pair.access_token)

        clock.advance(hours=23)
        assert services.revocation.purge_expired() == 0
        assert services.revocation.is_revoked(jti)

        clock.advance(hours=1)
        assert services.revocation.purge_expired() == 1
        assert services.revocation.is_revoked(jti) is False
