# Standard library (Python built-in modules)
import json
import logging
from typing import Dict, List, Optional, Any, Tuple

# External library
import pymysql

from single_user_rotation.config import RotationConfig
from single_user_rotation.credential_target import MySQLCredentialTarget
from single_user_rotation.exceptions import (
    InvalidStageError,
    NoValidCredentialError,
    RotationDisabledError,
    SecretNotFoundError,
    SecretPayloadInvalidError,
    SecretVersionExistsError,
    UnknownPhaseError,
    UnknownVersionError,
    ValidationFailedError,
)
from single_user_rotation.secret_store import (
    SecretsManagerStore,
    VERSION_STAGE_CURRENT,
    VERSION_STAGE_PENDING,
    VERSION_STAGE_PREVIOUS,
)

logger = logging.getLogger(__name__)

SUPPORTED_ENGINES = ('mysql', 'mariadb')
REQUIRED_SECRET_KEYS = ('host', 'username', 'password')

# Step names sent by AWS Secrets Manager, with short phase names as aliases
STEP_CREATE = 'createSecret'
STEP_SET = 'setSecret'
STEP_TEST = 'testSecret'
STEP_FINISH = 'finishSecret'
STEP_ALIASES = {
    'create': STEP_CREATE,
    'set': STEP_SET,
    'test': STEP_TEST,
    'finish': STEP_FINISH,
}

# Credentials tried by setSecret, in order. Stages in OPTIONAL_FALLBACK_STAGES
# may legitimately be missing from the secret and are skipped when absent.
SET_SECRET_FALLBACK_STAGES = (VERSION_STAGE_PENDING, VERSION_STAGE_CURRENT, VERSION_STAGE_PREVIOUS)
OPTIONAL_FALLBACK_STAGES = (VERSION_STAGE_PREVIOUS,)

# ============================================================================
# Rotation Flow (Single-User Strategy)
# ============================================================================
# Step 1: createSecret
#   - Get AWSCURRENT secret value
#   - Generate new password (once per ClientRequestToken)
#   - Store new secret value as AWSPENDING version
#
# Step 2: setSecret
#   - Log in with AWSPENDING → AWSCURRENT → AWSPREVIOUS, first success wins
#   - AWSPENDING already works: nothing to do
#   - Otherwise: ALTER USER to the AWSPENDING password
#
# Step 3: testSecret
#   - Log in with AWSPENDING and run a read-only query
#
# Step 4: finishSecret
#   - Promote AWSPENDING to AWSCURRENT (old AWSCURRENT to AWSPREVIOUS)
#
# Function Dependencies:
#   rotate()
#   ├── create_secret()
#   │   ├── get_secret() ───────────────────────────── Get AWSCURRENT / AWSPENDING secret values
#   │   └── create_new_secret_value() ──────────────── Generate new password
#   ├── set_secret()
#   │   ├── get_login_candidates() ─────────────────── Fetch and check AWSPENDING, AWSCURRENT, AWSPREVIOUS
#   │   └── find_valid_connection() ────────────────── First candidate that can log in
#   ├── test_secret()
#   └── finish_secret()


def validate_secret_dict(secret: Dict[str, Any], arn: str, version_stage: str) -> Dict[str, Any]:
    """
    Purpose:
        Check that a secret value describes a MySQL credential.

    Raises:
        SecretPayloadInvalidError: If engine is unsupported, a required key is
            missing or empty, or port is not a positive integer
    """

    engine = secret.get('engine')
    if engine not in SUPPORTED_ENGINES:
        raise SecretPayloadInvalidError(f"Secret {arn} stage {version_stage} has unsupported engine {engine!r}")

    missing = [key for key in REQUIRED_SECRET_KEYS if not secret.get(key)]
    if missing:
        raise SecretPayloadInvalidError(f"Secret {arn} stage {version_stage} is missing keys: {', '.join(missing)}")

    if 'port' in secret:
        try:
            port = int(secret['port'])
        except (TypeError, ValueError):
            port = 0
        if port <= 0:
            raise SecretPayloadInvalidError(f"Secret {arn} stage {version_stage} has invalid port: {secret['port']!r}")

    return secret


class RotationController:
    """
    Purpose:
        Four-step rotation state machine for a single database user.

    The store and target are passed in rather than created here, so tests run
    the controller against in-memory fakes.

    Args:
        store (SecretsManagerStore): Secret store wrapper
        target (MySQLCredentialTarget): Database the credential logs in to
        config (RotationConfig): Password policy
    """

    def __init__(self, store: SecretsManagerStore, target: MySQLCredentialTarget, config: Optional[RotationConfig] = None):
        self.store = store
        self.target = target
        self.config = config or RotationConfig()
        self._steps = {
            STEP_CREATE: self.create_secret,
            STEP_SET: self.set_secret,
            STEP_TEST: self.test_secret,
            STEP_FINISH: self.finish_secret,
        }

    def rotate(self, arn: str, token: str, step: str) -> None:
        """
        Purpose:
            Validate the request against the secret's stages and run one rotation step.

        Flow Summary:
            1. Describe the secret.
            2. Fail if rotation is disabled or the token is not a version of the secret.
            3. Return if the token version is already AWSCURRENT.
            4. Run the step if the token version is AWSPENDING, fail otherwise.

        Raises:
            RotationDisabledError: If rotation is not enabled for the secret
            UnknownVersionError: If the token is not a version of the secret
            InvalidStageError: If the token version is neither AWSCURRENT nor AWSPENDING
            UnknownPhaseError: If the step name is not recognised
        """

        metadata = self.store.describe_secret(arn)
        if not metadata.rotation_enabled:
            logger.error(f"Secret {arn} is not enabled for rotation")
            raise RotationDisabledError(f"Secret {arn} is not enabled for rotation")

        stages = metadata.versions.get(token)
        if stages is None:
            logger.error(f"Secret version {token} has no stage for rotation of secret {arn}")
            raise UnknownVersionError(f"Secret version {token} has no stage for rotation of secret {arn}")

        if VERSION_STAGE_CURRENT in stages:
            logger.info(f"Secret version {token} already set as AWSCURRENT for secret {arn}")
            return

        if VERSION_STAGE_PENDING not in stages:
            logger.error(f"Secret version {token} not set as AWSPENDING for rotation of secret {arn}")
            raise InvalidStageError(f"Secret version {token} not set as AWSPENDING for rotation of secret {arn}")

        handler = self._steps.get(STEP_ALIASES.get(step, step))
        if handler is None:
            logger.error(f"Unknown step: {step}")
            raise UnknownPhaseError(f"Unknown step: {step}")

        handler(arn, token)

    def create_secret(self, arn: str, token: str) -> None:
        """
        Purpose:
            Create a new secret version with AWSPENDING stage and a newly generated password.

        Note:
            At most one password is ever generated per token: an existing
            AWSPENDING version is left untouched, and a concurrent create that
            wins the put is detected through the idempotent ClientRequestToken.
        """

        # Also validates that AWSCURRENT is usable as a template
        current_secret = self.get_secret(arn, VERSION_STAGE_CURRENT)

        try:
            self.get_secret(arn, VERSION_STAGE_PENDING, token)
            logger.info(f"AWSPENDING version already exists for secret {arn} with token {token}, skipping.")
            return
        except SecretNotFoundError:
            # Expected - AWSPENDING doesn't exist yet, continue with creation
            pass

        new_secret = self.create_new_secret_value(current_secret)
        try:
            self.store.put_secret_value(arn, token, new_secret, [VERSION_STAGE_PENDING])
        except SecretVersionExistsError:
            logger.info(f"Version {token} of secret {arn} was created concurrently, skipping.")
            return

        logger.info(f"Successfully created new AWSPENDING version for secret {arn} with token {token}.")

    def set_secret(self, arn: str, token: str) -> None:
        """
        Purpose:
            Make the database accept the AWSPENDING password.

        Flow Summary:
            1. Get AWSPENDING secret value.
            2. Log in with the first working credential of AWSPENDING, AWSCURRENT, AWSPREVIOUS.
            3. AWSPENDING works: the password is already set, nothing to do.
            4. AWSCURRENT or AWSPREVIOUS works: ALTER USER to the AWSPENDING password.

        Raises:
            NoValidCredentialError: If no credential can log in
            SecretPayloadInvalidError: If an AWSCURRENT/AWSPREVIOUS user differs from the AWSPENDING user

        Note:
            Every candidate is fetched and validated before the first login attempt.
            Exactly one connection is open at a time, and it is closed on every path.
        """

        candidates = self.get_login_candidates(arn, token)
        pending_secret = candidates[0][1]

        found = self.find_valid_connection(arn, candidates)
        if found is None:
            logger.error(
                f"Unable to log into database with AWSPENDING, AWSCURRENT or AWSPREVIOUS "
                f"credentials for secret {arn}"
            )
            raise NoValidCredentialError(
                f"Unable to log into database with AWSPENDING, AWSCURRENT or AWSPREVIOUS credentials for secret {arn}"
            )

        stage, conn = found
        try:
            if stage == VERSION_STAGE_PENDING:
                logger.info(f"AWSPENDING secret is already set as password in database for secret {arn}")
                return

            logger.info(f"Logged in with {stage} credentials, setting AWSPENDING password for secret {arn}")
            self.target.change_password(conn, pending_secret['username'], pending_secret['password'])
            logger.info(f"Successfully set password for user {pending_secret['username']} in database for secret {arn}")
        finally:
            self.target.close(conn)

    def get_login_candidates(self, arn: str, token: str) -> List[Tuple[str, Dict[str, Any]]]:
        """
        Purpose:
            Fetch the SET_SECRET_FALLBACK_STAGES secret values, in order, without touching the database.

        Returns:
            list: (stage, secret value) pairs, AWSPENDING first

        Raises:
            SecretNotFoundError: If AWSPENDING or AWSCURRENT has no value
            SecretPayloadInvalidError: If a value is malformed or names a user other than AWSPENDING's

        Note:
            Only AWSPENDING is pinned to the token. A missing AWSPREVIOUS
            version is left out, so it counts as a credential that does not work.
        """

        candidates = []
        for stage in SET_SECRET_FALLBACK_STAGES:
            try:
                secret = self.get_secret(arn, stage, token if stage == VERSION_STAGE_PENDING else None)
            except SecretNotFoundError:
                if stage not in OPTIONAL_FALLBACK_STAGES:
                    raise
                logger.info(f"No {stage} version exists for secret {arn}")
                continue

            if candidates and secret['username'] != candidates[0][1]['username']:
                raise SecretPayloadInvalidError(
                    f"Attempting to modify user {candidates[0][1]['username']} other than "
                    f"{stage} user {secret['username']} for secret {arn}"
                )
            candidates.append((stage, secret))

        return candidates

    def find_valid_connection(self, arn: str, candidates: List[Tuple[str, Dict[str, Any]]]) -> Optional[Tuple[str, Any]]:
        """
        Purpose:
            Return the first candidate that can log in.

        Returns:
            tuple: (stage, open connection) for the first working credential
            None: If none of them can log in
        """

        for stage, secret in candidates:
            logger.info(f"Trying {stage} credentials for secret {arn}")
            conn = self.target.try_connect(secret)
            if conn is not None:
                return stage, conn

        return None

    def test_secret(self, arn: str, token: str) -> None:
        """
        Purpose:
            Verify that the AWSPENDING credential can log in and run a query.

        Raises:
            ValidationFailedError: If the connection or the query fails
        """

        pending_secret = self.get_secret(arn, VERSION_STAGE_PENDING, token)

        conn = self.target.try_connect(pending_secret)
        if conn is None:
            logger.error(f"Unable to log into database with AWSPENDING credentials for secret {arn}")
            raise ValidationFailedError(f"Unable to log into database with AWSPENDING credentials for secret {arn}")

        try:
            self.target.check_liveness(conn)
        except pymysql.MySQLError as e:
            logger.error(f"Query with AWSPENDING credentials failed for secret {arn}: {str(e)}")
            raise ValidationFailedError(f"Query with AWSPENDING credentials failed for secret {arn}") from e
        finally:
            self.target.close(conn)

        logger.info(f"Successfully tested AWSPENDING credentials for secret {arn} with token {token}")

    def finish_secret(self, arn: str, token: str) -> None:
        """
        Purpose:
            Complete the rotation by promoting AWSPENDING to AWSCURRENT.

        Version Stage Lifecycle:
            Before: Version-A (AWSCURRENT), Version-B (AWSPENDING)
            After:  Version-A (AWSPREVIOUS), Version-B (AWSCURRENT + AWSPENDING)

        Note:
            The move is a single update_secret_version_stage call. Secrets
            Manager never shows two or zero AWSCURRENT versions.
        """

        metadata = self.store.describe_secret(arn)
        current_version_id = metadata.version_with_stage(VERSION_STAGE_CURRENT)

        if current_version_id == token:
            logger.info(f"Version {token} already marked as AWSCURRENT for secret {arn}")
            return

        self.store.update_secret_version_stage(arn, VERSION_STAGE_CURRENT, token, current_version_id)
        logger.info(f"Successfully set AWSCURRENT stage to version {token} for secret {arn}")

        versions = self.store.describe_secret(arn).versions
        stages = {version_id: sorted(labels) for version_id, labels in versions.items()}
        logger.info(f"Version stages for secret {arn}: {json.dumps(stages)}")

    def get_secret(self, arn: str, version_stage: str, token: Optional[str] = None) -> Dict[str, Any]:
        secret = self.store.get_secret_value(arn, version_stage, token)
        return validate_secret_dict(secret, arn, version_stage)

    def create_new_secret_value(self, current_secret: Dict[str, Any]) -> Dict[str, Any]:
        """
        Purpose:
            Copy the current secret and replace its password.

        Note:
            All other fields (engine, host, port, username, dbname, etc.) are
            preserved as-is.
        """

        new_secret = current_secret.copy()
        new_secret['password'] = self.store.get_random_password(
            self.config.password_length,
            exclude_characters=self.config.exclude_characters,
            exclude_punctuation=self.config.exclude_punctuation,
        )
        return new_secret
