"""
Secret field discovery inside JSON payloads.

A secret is a string leaf whose key is a known secret field name. Nested
objects and lists are walked; list items are addressed by index in the field
path (``hostPort.0.password``).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

DEFAULT_SECRET_FIELDS = frozenset(
    {
        "password",
        "token",
        "secretKey",
        "clientSecret",
        "privateKey",
        "privateKeyPassphrase",
        "accessToken",
        "refreshToken",
        "apiKey",
        "jwtToken",
        "authToken",
        "awsSecretAccessKey",
        "awsSessionToken",
        "sslKey",
        "keyfileContent",
        "connectionString",
        "dbtCloudAuthToken",
        "githubToken",
        "personalAccessToken",
        "sasToken",
        "accountKey",
        "webhookSecret",
    }
)

Transform = Callable[[str, str], str]


def secret_field_names(extra: Iterable[str] = ()) -> frozenset[str]:
    """Built-in secret field names plus any configured extras."""
    return DEFAULT_SECRET_FIELDS | frozenset(extra)


def transform_secrets(payload: Any, fn: Transform, fields: frozenset[str], path: str = "") -> Any:
    """Return a copy of ``payload`` with every secret leaf replaced by ``fn(path, value)``.

    The input is never modified, so a failure inside ``fn`` leaves it intact.
    """
    if isinstance(payload, dict):
        result: dict[str, Any] = {}
        for key, value in payload.items():
            child = f"{path}.{key}" if path else str(key)
            if key in fields and isinstance(value, str):
                result[key] = fn(child, value)
            else:
                result[key] = transform_secrets(value, fn, fields, child)
        return result
    if isinstance(payload, list):
        return [
            transform_secrets(item, fn, fields, f"{path}.{i}" if path else str(i))
            for i, item in enumerate(payload)
        ]
    return payload
