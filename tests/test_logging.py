"""Tests for the credential-redacting log processor."""

from sipandai.logging_config import RedactSensitiveProcessor


class TestRedactSensitiveProcessor:
    def test_masks_sensitive_keys(self) -> None:
        event = {
            "event": "login",
            "access_token": "abc",
            "Password": "hunter2",
            "user_id": "member-1",
        }
        result = RedactSensitiveProcessor()(None, "info", event)
        assert result["access_token"] == "[REDACTED]"
        assert result["Password"] == "[REDACTED]"
        assert result["user_id"] == "member-1"

    def test_masks_nested_dicts(self) -> None:
        event = {"event": "call", "headers": {"Authorization": "Bearer x", "accept": "json"}}
        result = RedactSensitiveProcessor()(None, "info", event)
        assert result["headers"] == {"Authorization": "[REDACTED]", "accept": "json"}
