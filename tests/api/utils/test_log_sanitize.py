from __future__ import annotations

from oidc_accounts.api.utils.logging import mask_email, sanitize_for_log


class TestSanitizeForLog:
    def test_strips_line_breaks_and_control_characters(self):
        assert sanitize_for_log("bad\r\nINFO forged\x1b[31m") == "bad INFO forged[31m"

    def test_truncates(self):
        result = sanitize_for_log("x" * 20, max_length=5)
        assert result == "xxxxx...[truncated]"

    def test_nested_values(self):
        assert sanitize_for_log({"a\n": ["b\n", None]}) == {"a": ["b", ""]}

    def test_non_strings_are_stringified(self):
        assert sanitize_for_log(401) == "401"


def test_mask_email():
    assert mask_email("jane.doe@acme.io") == "j***@acme.io"
    assert mask_email("no-at-sign") == "***"
    assert mask_email(None) == ""
