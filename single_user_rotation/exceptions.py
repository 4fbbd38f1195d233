# ============================================================================
# Rotation Exceptions
# ============================================================================
# Every error below is fatal to the current invocation. Nothing is retried
# internally: AWS Secrets Manager re-invokes the same step, and every step is
# idempotent, so re-invocation is the retry mechanism.
#
# Hierarchy:
#   RotationError
#   ├── RotationDisabledError ────── Rotation is not enabled on the secret
#   ├── UnknownVersionError ──────── ClientRequestToken is not a version of the secret
#   ├── InvalidStageError ────────── Version is neither AWSCURRENT nor AWSPENDING
#   ├── UnknownPhaseError ────────── Step name is not recognised
#   ├── NoValidCredentialError ───── AWSPENDING/AWSCURRENT/AWSPREVIOUS all fail to log in
#   ├── ValidationFailedError ────── AWSPENDING credential fails testSecret
#   ├── SecretPayloadInvalidError ── SecretString is malformed or has the wrong engine
#   ├── SecretNotFoundError ──────── No version matches the requested stage / version ID
#   └── SecretVersionExistsError ─── Conditional put found an existing version


class RotationError(Exception):
    """Base class for all rotation failures."""


class RotationDisabledError(RotationError):
    pass


class UnknownVersionError(RotationError):
    pass


class InvalidStageError(RotationError):
    """
    The requested version carries neither AWSCURRENT nor AWSPENDING.

    Signals that Secrets Manager and the rotation function disagree about the
    state of the secret.
    """


class UnknownPhaseError(RotationError):
    pass


class NoValidCredentialError(RotationError):
    """
    None of the AWSPENDING, AWSCURRENT or AWSPREVIOUS credentials can log in.

    The live database password has drifted away from every version Secrets
    Manager knows about. Requires manual intervention.
    """


class ValidationFailedError(RotationError):
    pass


class SecretPayloadInvalidError(RotationError):
    pass


class SecretNotFoundError(RotationError):
    pass


class SecretVersionExistsError(RotationError):
    pass
