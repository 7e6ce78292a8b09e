from src.utils.sanitization import fingerprint, mask_email, redact


def test_mask_email():
    assert mask_email("john.smith@example.com") == "j***h@example.com"
    assert mask_email("jo@example.com") == "j***@example.com"
    assert mask_email("not-an-email") == "not-an-email"
    assert mask_email("") == ""


def test_fingerprint_is_short_and_stable():
    assert fingerprint("abc") == fingerprint("abc")
    assert len(fingerprint("abc")) == 12
    assert fingerprint("abc") != fingerprint("abd")
    assert fingerprint("") == ""


def test_redact():
    details = {"secret": "x", "Token": "y", "nested": {"code": "z"}, "count": 3}
    assert redact(details, frozenset({"secret", "token", "code"})) == {
        "secret": "[REDACTED]",
        "Token": "[REDACTED]",
        "nested": {"code": "[REDACTED]"},
        "count": 3,
    }
