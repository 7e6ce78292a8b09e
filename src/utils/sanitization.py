import hashlib


def mask_email(email: str) -> str:
    """
    Mask an email address for logging.
    Example: j***h@example.com
    """
    if not email or "@" not in email:
        return email

    name, _, domain = email.rpartition("@")
    if not name:
        return f"***@{domain}"
    if len(name) <= 2:
        return f"{name[0]}***@{domain}"

    return f"{name[0]}***{name[-1]}@{domain}"


def fingerprint(value: str, length: int = 12) -> str:
    """
    Short, irreversible identifier for correlating log lines.

    Only ever pass values that are already hashes; the fingerprint of a
    low-entropy plaintext (a 6-digit token) could be brute forced.
    """
    if not value:
        return ""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:length]


def redact(details: dict, sensitive_keys: frozenset) -> dict:
    """Return a copy of ``details`` with sensitive keys replaced."""
    clean = {}
    for key, value in details.items():
        if key.lower() in sensitive_keys:
            clean[key] = "[REDACTED]"
        elif isinstance(value, dict):
            clean[key] = redact(value, sensitive_keys)
        else:
            clean[key] = value
    return clean
