"""Single-user AWS Secrets Manager rotation for MySQL credentials."""

from single_user_rotation.config import RotationConfig
from single_user_rotation.credential_target import MySQLCredentialTarget
from single_user_rotation.exceptions import (
    InvalidStageError,
    NoValidCredentialError,
    RotationDisabledError,
    RotationError,
    SecretNotFoundError,
    SecretPayloadInvalidError,
    SecretVersionExistsError,
    UnknownPhaseError,
    UnknownVersionError,
    ValidationFailedError,
)
from single_user_rotation.rotation import RotationController
from single_user_rotation.secret_store import SecretMetadata, SecretsManagerStore

__all__ = [
    "InvalidStageError",
    "MySQLCredentialTarget",
    "NoValidCredentialError",
    "RotationConfig",
    "RotationController",
    "RotationDisabledError",
    "RotationError",
    "SecretMetadata",
    "SecretNotFoundError",
    "SecretPayloadInvalidError",
    "SecretVersionExistsError",
    "SecretsManagerStore",
    "UnknownPhaseError",
    "UnknownVersionError",
    "ValidationFailedError",
]
