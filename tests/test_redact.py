from __future__ import annotations

from pystoresync._redact import redact_for_log


def test_redact_for_log_masks_credential_like_keys() -> None:
    payload = {
        "state": {
            "geminiApiKey": "sk-123",
            "authToken": "abc",
            "profile": {"name": "Ana", "password": "pw"},
        },
        "version": 0,
    }

    redacted = redact_for_log(payload)
    assert redacted["state"]["geminiApiKey"] == "<redacted>"
    assert redacted["state"]["authToken"] == "<redacted>"
    assert redacted["state"]["profile"] == {"name": "Ana", "password": "<redacted>"}
    assert redacted["version"] == 0


def test_redact_for_log_truncates_long_strings_and_lists() -> None:
    redacted = redact_for_log({"notes": "x" * 600, "items": list(range(50))}, max_string=10)

    assert redacted["notes"].startswith("x" * 10)
    assert "+590 chars" in redacted["notes"]
    assert len(redacted["items"]) == 21
    assert redacted["items"][-1] == "<30 more items>"
