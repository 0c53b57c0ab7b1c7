"""
Error taxonomy for secrets rotation.

Every error raised out of a rotation run is a SecretsRotationError. The
original exception is chained (``raise ... from exc``) and also kept on
``cause`` so callers can report it without walking ``__cause__``.
"""

from __future__ import annotations


class SecretsRotationError(Exception):
    """Base class: rotation did not complete."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class ConfigurationError(SecretsRotationError):
    """A secrets manager or rotation plan is misconfigured."""


class RegistryError(SecretsRotationError):
    """The entity registry is mis-wired."""


class RegistryEmptyError(RegistryError):
    """No service-style entity was registered."""


class UnmappedConnectionTypeError(SecretsRotationError):
    """A service record's connection type has no owning repository."""

    def __init__(self, connection_type: str) -> None:
        super().__init__(f"No service repository registered for connection type '{connection_type}'")
        self.connection_type = connection_type


class SecretCodecError(SecretsRotationError):
    """Decrypting or encrypting a payload failed."""


class StoreError(SecretsRotationError):
    """Listing, fetching or updating a record failed."""


class RecordNotFoundError(StoreError):
    """A listed record no longer exists when reloaded."""

    def __init__(self, entity_type: str, record_id: str) -> None:
        super().__init__(f"{entity_type} {record_id} not found")
        self.entity_type = entity_type
        self.record_id = record_id


class RotationCancelledError(SecretsRotationError):
    """The run was stopped at a record boundary."""
