from __future__ import annotations

import pytest

from oidc_accounts.utils import is_base64_url, parse_email, slugify_domain


class TestParseEmail:
    def test_splits_and_lowercases(self):
        parsed = parse_email("  Jane.Doe@Acme.IO ")
        assert parsed.local == "jane.doe"
        assert parsed.domain == "acme.io"

    def test_splits_at_last_at_sign(self):
        assert parse_email('"a@b"@acme.io').domain == "acme.io"

    @pytest.mark.parametrize("email", ["", "jane", "jane@", "@acme.io"])
    def test_invalid(self, email):
        with pytest.raises(ValueError):
            parse_email(email)


@pytest.mark.parametrize(
    "domain, expected",
    [
        ("acme.io", "acme"),
        ("eng.acme.co.uk", "eng-acme-co"),
        ("Big_Corp.com", "big-corp"),
        ("localhost", "localhost"),
        ("müller.de", "muller"),
    ],
)
def test_slugify_domain(domain, expected):
    assert slugify_domain(domain) == expected


def test_slugify_domain_length_is_capped():
    assert len(slugify_domain("a" * 100 + ".com")) == 63


@pytest.mark.parametrize(
    "value, expected",
    [
        ("data:image/png;base64,iVBORw0KGgo=", True),
        ("DATA:image/jpeg;charset=utf-8;base64,/9j/", True),
        ("data:;base64,AAAA", True),
        ("data:text/plain,hello", False),
        ("https://cdn.acme.io/jane.png", False),
        ("", False),
    ],
)
def test_is_base64_url(value, expected):
    assert is_base64_url(value) is expected
