# Standard library (Python built-in modules)
import os
from dataclasses import dataclass
from typing import Mapping, Optional

# ============================================================================
# Configuration and Constants
# ============================================================================
# Environment variable keys - Optional: All have default values if not set
ENV_PASSWORD_LENGTH = 'PASSWORD_LENGTH'
ENV_EXCLUDE_CHARACTERS = 'EXCLUDE_CHARACTERS'
ENV_EXCLUDE_PUNCTUATION = 'EXCLUDE_PUNCTUATION'
ENV_DB_CA_BUNDLE_PATH = 'DB_CA_BUNDLE_PATH'
ENV_DB_CONNECTION_TIMEOUT = 'DB_CONNECTION_TIMEOUT'
ENV_LOG_LEVEL = 'LOG_LEVEL'

# Default values
DEFAULT_PASSWORD_LENGTH = 128
DEFAULT_EXCLUDE_CHARACTERS = '/@"\'\\'
DEFAULT_EXCLUDE_PUNCTUATION = True
DEFAULT_CONNECTION_TIMEOUT = 5
DEFAULT_LOG_LEVEL = 'INFO'

_TRUE_VALUES = ('1', 'true', 'yes', 'on')
_FALSE_VALUES = ('0', 'false', 'no', 'off')


def _parse_positive_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ValueError(f"Environment variable {name} must be positive, got {value}")
    return value


def _parse_bool(name: str, raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Environment variable {name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class RotationConfig:
    """
    Purpose:
        Settings for one rotation invocation, read from Lambda environment variables.

    Environment Variables:
        PASSWORD_LENGTH: Generated password length (default: 128)
        EXCLUDE_CHARACTERS: Characters never used in passwords (default: /@"'\\)
        EXCLUDE_PUNCTUATION: Exclude all punctuation from passwords (default: true)
        DB_CA_BUNDLE_PATH: Path to CA certificate bundle (optional)
        DB_CONNECTION_TIMEOUT: Connect/read/write timeout in seconds (default: 5)
        LOG_LEVEL: Root logger level (default: INFO)

    Note:
        Punctuation is excluded by default so the password never breaks shell
        or SQL quoting in tools that consume the secret.
    """

    password_length: int = DEFAULT_PASSWORD_LENGTH
    exclude_characters: str = DEFAULT_EXCLUDE_CHARACTERS
    exclude_punctuation: bool = DEFAULT_EXCLUDE_PUNCTUATION
    ca_bundle_path: Optional[str] = None
    connection_timeout: int = DEFAULT_CONNECTION_TIMEOUT
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'RotationConfig':
        """Build a config from ``environ`` (defaults to ``os.environ``)."""
        if environ is None:
            environ = os.environ

        password_length = DEFAULT_PASSWORD_LENGTH
        if environ.get(ENV_PASSWORD_LENGTH):
            password_length = _parse_positive_int(ENV_PASSWORD_LENGTH, environ[ENV_PASSWORD_LENGTH])

        connection_timeout = DEFAULT_CONNECTION_TIMEOUT
        if environ.get(ENV_DB_CONNECTION_TIMEOUT):
            connection_timeout = _parse_positive_int(ENV_DB_CONNECTION_TIMEOUT, environ[ENV_DB_CONNECTION_TIMEOUT])

        exclude_punctuation = DEFAULT_EXCLUDE_PUNCTUATION
        if environ.get(ENV_EXCLUDE_PUNCTUATION):
            exclude_punctuation = _parse_bool(ENV_EXCLUDE_PUNCTUATION, environ[ENV_EXCLUDE_PUNCTUATION])

        return cls(
            password_length=password_length,
            exclude_characters=environ.get(ENV_EXCLUDE_CHARACTERS, DEFAULT_EXCLUDE_CHARACTERS),
            exclude_punctuation=exclude_punctuation,
            ca_bundle_path=environ.get(ENV_DB_CA_BUNDLE_PATH) or None,
            connection_timeout=connection_timeout,
            log_level=environ.get(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL).upper(),
        )
