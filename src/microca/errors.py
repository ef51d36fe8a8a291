"""Error taxonomy shared by every microca operation.

Each error carries the operation and the path or identity involved in its
message; callers wrap lower-level exceptions with ``raise ... from``.
"""


class MicroCAError(Exception):
    """Base class for all microca failures."""

    pass


class ConfigurationError(MicroCAError):
    """Raised for invalid settings: unknown curve, missing SANs, bad IP literals."""

    pass


class ValidationError(MicroCAError):
    """Raised when persisted material is malformed or inconsistent."""

    pass


class ResourceConflictError(MicroCAError):
    """Raised when a create-exclusive target already exists."""

    pass


class StorageError(MicroCAError):
    """Raised when a file cannot be read, created or found."""

    pass


class CryptoError(MicroCAError):
    """Raised when a cryptographic operation fails."""

    pass
