"""Masking of sensitive fields in exported debug data."""

from typing import Any

SENSITIVE_KEY_PARTS = ("password", "token", "secret", "apikey")
MASK = "***"
MAX_DOM_EXPORT_CHARS = 100_000


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return lowered == "authorization" or any(part in lowered for part in SENSITIVE_KEY_PARTS)


def mask_sensitive(data: Any) -> Any:
    """Recursively mask sensitive values in dicts and lists.

    Keys containing password/token/secret/apikey, or equal to
    authorization (case-insensitive), are replaced with ``***``. An
    ``Authorization`` entry inside a ``headers`` mapping becomes
    ``Bearer ***``. DOM strings longer than 100,000 characters are
    truncated.
    """
    if isinstance(data, list):
        return [mask_sensitive(item) for item in data]
    if not isinstance(data, dict):
        return data

    masked: dict[str, Any] = {}
    for key, value in data.items():
        lowered = str(key).lower()
        if lowered == "headers" and isinstance(value, dict):
            masked[key] = {
                header: "Bearer ***" if str(header).lower() == "authorization" else header_value
                for header, header_value in value.items()
            }
        elif is_sensitive_key(str(key)):
            masked[key] = MASK
        elif lowered in ("dom", "dom_snapshot", "domsnapshot") and isinstance(value, str) \
                and len(value) > MAX_DOM_EXPORT_CHARS:
            masked[key] = (
                value[:MAX_DOM_EXPORT_CHARS]
                + f"... [truncated, original length: {len(value)}]"
            )
        elif isinstance(value, (dict, list)):
            masked[key] = mask_sensitive(value)
        else:
            masked[key] = value
    return masked
