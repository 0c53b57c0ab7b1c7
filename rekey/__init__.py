"""
rekey — rotate the secrets embedded in metadata records between secrets manager backends.

Usage:
    from rekey import rotate
    rotate(source_config, target_config, "prod")
"""

from __future__ import annotations

__version__ = "0.1.0"

from rekey.errors import SecretsRotationError
from rekey.rotation import SecretsRotationService, rotate

__all__ = ["SecretsRotationError", "SecretsRotationService", "__version__", "rotate"]
