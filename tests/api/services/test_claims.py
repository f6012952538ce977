from __future__ import annotations

import jwt
import pytest

from oidc_accounts.api.services.claims import (
    CanonicalIdentity,
    ClaimPath,
    claim_text,
    decode_id_token,
    normalize,
)
from oidc_accounts.api.services.errors import IdentityIncompleteError


def _id_token(claims: dict) -> str:
    return jwt.encode(claims, "signing-key-not-checked-on-decode-0123456789", algorithm="HS256")


class TestClaimPath:
    def test_simple_claim(self):
        assert ClaimPath.parse("preferred_username").segments == ("preferred_username",)

    def test_nested_claim_with_index(self):
        path = ClaimPath.parse("profile.names[0].value")
        assert path.segments == ("profile", "names", 0, "value")
        assert str(path) == "profile.names[0].value"

    def test_quoted_key_keeps_dots(self):
        path = ClaimPath.parse("['https://example.com/username']")
        assert path.segments == ("https://example.com/username",)

    def test_lookup_nested(self):
        claims = {"profile": {"names": [{"value": "jdoe"}]}}
        assert ClaimPath.parse("profile.names[0].value").lookup(claims) == "jdoe"

    def test_lookup_missing_returns_none(self):
        claims = {"profile": {"names": []}}
        assert ClaimPath.parse("profile.names[0].value").lookup(claims) is None
        assert ClaimPath.parse("profile.age.years").lookup({"profile": {"age": 3}}) is None

    def test_empty_path_rejected(self):
        with pytest.raises(ValueError):
            ClaimPath.parse("  ")


class TestClaimText:
    def test_numeric_ids_become_strings(self):
        assert claim_text({"id": 12345}, "id") == "12345"

    def test_blank_and_non_string_values_are_absent(self):
        assert claim_text({"name": "   "}, "name") is None
        assert claim_text({"name": {"first": "J"}}, "name") is None
        assert claim_text({"email_verified": True}, "email_verified") is None


class TestDecodeIdToken:
    def test_decodes_without_verifying(self):
        decoded = decode_id_token(_id_token({"sub": "abc", "email": "jane@acme.io"}))
        assert decoded.ok
        assert decoded.claims["email"] == "jane@acme.io"

    def test_garbage_token_degrades_to_empty_claims(self):
        decoded = decode_id_token("not-a-jwt")
        assert not decoded.ok
        assert decoded.claims == {}

    def test_missing_token_degrades_to_empty_claims(self):
        decoded = decode_id_token(None)
        assert decoded.claims == {}
        assert decoded.error == "id_token not present"

    def test_expired_token_still_decodes(self):
        decoded = decode_id_token(_id_token({"sub": "abc", "exp": 1}))
        assert decoded.ok
        assert decoded.claims["sub"] == "abc"


class TestNormalize:
    def test_full_profile(self):
        identity = normalize(
            {
                "sub": "user-1",
                "email": "jane@acme.io",
                "name": "Jane Doe",
                "preferred_username": "jane",
                "picture": "https://cdn.acme.io/jane.png",
            },
            {},
        )
        assert identity == CanonicalIdentity(
            email="jane@acme.io",
            external_user_id="user-1",
            display_name="Jane Doe",
            username="jane",
            avatar_url="https://cdn.acme.io/jane.png",
        )

    def test_email_and_username_from_id_token(self):
        # ADFS style: userinfo only carries the subject
        identity = normalize(
            {"sub": "user-1"},
            {"email": "jane@acme.io", "preferred_username": "jane"},
        )
        assert identity.email == "jane@acme.io"
        assert identity.username == "jane"
        assert identity.display_name == "jane"

    def test_userinfo_email_wins_over_id_token(self):
        identity = normalize(
            {"sub": "u", "email": "a@acme.io", "name": "A"},
            {"email": "b@acme.io"},
        )
        assert identity.email == "a@acme.io"

    def test_id_claim_used_when_sub_missing(self):
        identity = normalize({"id": 42, "email": "a@acme.io", "name": "A"}, {})
        assert identity.external_user_id == "42"

    def test_username_field_is_last_name_fallback(self):
        identity = normalize({"sub": "u", "email": "a@acme.io", "username": "ann"}, {})
        assert identity.display_name == "ann"
        assert identity.username is None

    def test_custom_username_claim(self):
        identity = normalize(
            {"sub": "u", "email": "a@acme.io", "attributes": {"login": "ann"}},
            {},
            "attributes.login",
        )
        assert identity.username == "ann"
        assert identity.display_name == "ann"

    def test_missing_email(self):
        with pytest.raises(IdentityIncompleteError) as exc_info:
            normalize({"sub": "u", "name": "A"}, {"sub": "u"})
        assert exc_info.value.field == "email"

    def test_missing_subject(self):
        with pytest.raises(IdentityIncompleteError) as exc_info:
            normalize({"email": "a@acme.io", "name": "A"}, {"sub": "from-token"})
        assert exc_info.value.field == "subject"

    def test_missing_name(self):
        with pytest.raises(IdentityIncompleteError) as exc_info:
            normalize({"sub": "u", "email": "a@acme.io"}, {})
        assert exc_info.value.field == "name"

    @pytest.mark.parametrize(
        "picture",
        [
            "data:image/png;base64,iVBORw0KGgo=",
            "DATA:image/jpeg;base64,/9j/4AAQ",
            "data:image/svg+xml;charset=utf-8;base64,PHN2Zz4=",
        ],
    )
    def test_base64_avatar_is_dropped(self, picture):
        identity = normalize(
            {"sub": "u", "email": "a@acme.io", "name": "A", "picture": picture}, {}
        )
        assert identity.avatar_url is None

    def test_non_string_avatar_is_dropped(self):
        identity = normalize(
            {"sub": "u", "email": "a@acme.io", "name": "A", "picture": {"url": "x"}},
            {},
        )
        assert identity.avatar_url is None
