# Tests for tokenward/models.py
# Created: 2026-10-19

from datetime import UTC, datetime, timedelta

import pytest

from tokenward.models import AccessToken, Authorization, GrantType, PendingAuthorization


def _authorization(**overrides):
    data = dict(
        authorization_id="Acme-abc",
        client_id="abc",
        client_secret="s3cret",
        service_name="Acme",
        grant_type=GrantType.CLIENT_CREDENTIALS,
        access_token="token-1",
    )
    data.update(overrides)
    return Authorization(**data)


class TestAuthorization:
    def test_no_expiry_never_expires(self):
        assert _authorization(expires=None).is_expired() is False

    def test_past_expiry_is_expired(self):
        past = datetime.now(UTC) - timedelta(hours=1)
        assert _authorization(expires=past).is_expired() is True

    def test_future_expiry_is_valid(self):
        future = datetime.now(UTC) + timedelta(hours=1)
        assert _authorization(expires=future).is_expired() is False

    def test_leeway_expires_early(self):
        soon = datetime.now(UTC) + timedelta(seconds=30)
        assert _authorization(expires=soon).is_expired(leeway=60) is True

    def test_empty_access_token_rejected(self):
        with pytest.raises(ValueError, match="empty access token"):
            _authorization(access_token="")

    def test_grant_type_coerced_from_string(self):
        auth = _authorization(grant_type="authorization_code")
        assert auth.grant_type is GrantType.AUTHORIZATION_CODE

    def test_apply_token_keeps_refresh_token_when_not_rotated(self):
        auth = _authorization(refresh_token="refresh-1")
        auth.apply_token(AccessToken(token="token-2", expires_at_epoch=2_000_000_000))
        assert auth.access_token == "token-2"
        assert auth.refresh_token == "refresh-1"
        assert auth.expires == datetime.fromtimestamp(2_000_000_000, tz=UTC)

    def test_apply_token_takes_rotated_refresh_token(self):
        auth = _authorization(refresh_token="refresh-1")
        auth.apply_token(AccessToken(token="token-2", refresh_token="refresh-2"))
        assert auth.refresh_token == "refresh-2"
        assert auth.expires is None

    def test_apply_token_rejects_empty(self):
        auth = _authorization()
        with pytest.raises(ValueError):
            auth.apply_token(AccessToken(token=""))
        assert auth.access_token == "token-1"

    def test_dict_round_trip(self):
        auth = _authorization(
            refresh_token="r",
            expires=datetime(2030, 1, 1, tzinfo=UTC),
            scope="read write",
            token_values={"id_token": "jwt"},
        )
        data = auth.to_dict()
        assert data["grant_type"] == "client_credentials"
        assert data["expires"] == "2030-01-01T00:00:00+00:00"
        assert Authorization.from_dict(data) == auth

    def test_from_access_token(self):
        token = AccessToken(
            token="t", refresh_token="r", expires_at_epoch=1_900_000_000, raw_values={"x": 1}
        )
        auth = Authorization.from_access_token(
            "S1", "abc", "s3cret", "Acme", GrantType.AUTHORIZATION_CODE, token, "read"
        )
        assert auth.authorization_id == "S1"
        assert auth.refresh_token == "r"
        assert auth.scope == "read"
        assert auth.token_values == {"x": 1}
        assert auth.expires == datetime.fromtimestamp(1_900_000_000, tz=UTC)


class TestPendingAuthorization:
    def test_dict_shape(self):
        pending = PendingAuthorization("S1", "abc", "s3cret", "https://app/done")
        assert pending.to_dict() == {
            "clientId": "abc",
            "clientSecret": "s3cret",
            "returnToUri": "https://app/done",
        }
        assert PendingAuthorization.from_dict("S1", pending.to_dict()) == pending


class TestAccessToken:
    def test_expires_none(self):
        assert AccessToken(token="t").expires is None
