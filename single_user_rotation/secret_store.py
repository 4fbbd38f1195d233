# Standard library (Python built-in modules)
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Any, Set

# External library (Pre-installed in AWS Lambda runtime environment)
from botocore.exceptions import ClientError
from botocore.client import BaseClient

from single_user_rotation.exceptions import (
    SecretNotFoundError,
    SecretPayloadInvalidError,
    SecretVersionExistsError,
)

logger = logging.getLogger(__name__)

# Secrets Manager version stages
VERSION_STAGE_CURRENT = 'AWSCURRENT'
VERSION_STAGE_PENDING = 'AWSPENDING'
VERSION_STAGE_PREVIOUS = 'AWSPREVIOUS'

# Secrets Manager error codes
ERROR_RESOURCE_NOT_FOUND = 'ResourceNotFoundException'
ERROR_RESOURCE_EXISTS = 'ResourceExistsException'


@dataclass
class SecretMetadata:
    """Result of describe_secret: rotation flag and VersionIdsToStages as sets."""

    rotation_enabled: bool
    versions: Dict[str, Set[str]] = field(default_factory=dict)

    def version_with_stage(self, stage: str) -> Optional[str]:
        """Return the version ID holding ``stage``, or None."""
        for version_id, stages in self.versions.items():
            if stage in stages:
                return version_id
        return None


def _error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', '')


class SecretsManagerStore:
    """
    Purpose:
        Narrow wrapper around a boto3 Secrets Manager client.

    Translates the two Secrets Manager errors the rotation relies on into
    rotation exceptions:
        - ResourceNotFoundException → SecretNotFoundError
        - ResourceExistsException   → SecretVersionExistsError (put_secret_value only)

    Every other ClientError is logged and re-raised unchanged.

    References:
        https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/secretsmanager.html
    """

    def __init__(self, service_client: BaseClient):
        self.service_client = service_client

    def describe_secret(self, arn: str) -> SecretMetadata:
        """
        Purpose:
            Get rotation flag and version stages for the secret.

        Returns:
            SecretMetadata: rotation_enabled and versions (version ID → set of stages)

        Example Response (from AWS):
            VersionIdsToStages: {
                "abc123-version-id-1": ["AWSCURRENT"],
                "def456-version-id-2": ["AWSPREVIOUS"]
            }
        """

        try:
            response = self.service_client.describe_secret(SecretId=arn)
        except ClientError as e:
            logger.error(f"Error describing secret '{arn}': {e}")
            raise

        versions = {
            version_id: set(stages)
            for version_id, stages in response.get('VersionIdsToStages', {}).items()
        }
        return SecretMetadata(
            rotation_enabled=bool(response.get('RotationEnabled', False)),
            versions=versions,
        )

    def get_secret_value(
        self,
        arn: str,
        version_stage: str = VERSION_STAGE_CURRENT,
        token: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Purpose:
            Get the secret value for a version stage, optionally pinned to a version ID.

        Args:
            arn (str): ARN of the secret to retrieve
            version_stage (str): Version stage (default: AWSCURRENT)
            token (str, optional): Version ID to retrieve a specific version

        Returns:
            dict: SecretString parsed as a JSON object

        Raises:
            SecretNotFoundError: If no version matches the stage / version ID
            SecretPayloadInvalidError: If SecretString is not a JSON object
            ClientError: For any other Secrets Manager failure
        """

        params = {
            'SecretId': arn,
            'VersionStage': version_stage
        }

        # If token is specified, add version ID to params
        if token is not None:
            params['VersionId'] = token

        try:
            response = self.service_client.get_secret_value(**params)
        except ClientError as e:
            if _error_code(e) == ERROR_RESOURCE_NOT_FOUND:
                raise SecretNotFoundError(
                    f"Secret {arn} has no version with stage {version_stage}"
                    + (f" and version ID {token}" if token else "")
                ) from e
            logger.error(f"Error retrieving secret: '{arn}' {e}")
            raise

        try:
            secret = json.loads(response['SecretString'])
        except (KeyError, TypeError, ValueError) as e:
            raise SecretPayloadInvalidError(f"Secret {arn} stage {version_stage} does not hold a JSON SecretString") from e

        if not isinstance(secret, dict):
            raise SecretPayloadInvalidError(f"Secret {arn} stage {version_stage} is not a JSON object")
        return secret

    def put_secret_value(self, arn: str, token: str, secret: Dict[str, Any], version_stages: Iterable[str]) -> None:
        """
        Purpose:
            Store a new secret version. ClientRequestToken makes the write idempotent:
            the token becomes the version ID, and a second write for the same token fails.

        Raises:
            SecretVersionExistsError: If a version already exists for this token
            ClientError: For any other Secrets Manager failure
        """

        try:
            self.service_client.put_secret_value(
                SecretId=arn,
                ClientRequestToken=token,
                SecretString=json.dumps(secret),
                VersionStages=list(version_stages)
            )
        except ClientError as e:
            if _error_code(e) == ERROR_RESOURCE_EXISTS:
                raise SecretVersionExistsError(f"Secret {arn} already has a version {token}") from e
            logger.error(f"Error storing secret version '{arn}' {token}: {e}")
            raise

    def update_secret_version_stage(
        self,
        arn: str,
        version_stage: str,
        move_to_version_id: str,
        remove_from_version_id: Optional[str]
    ) -> None:
        """
        Purpose:
            Atomically move a stage label from one version to another.

        Note:
            When AWSCURRENT moves, Secrets Manager attaches AWSPREVIOUS to the
            version it was removed from in the same operation.
        """

        params = {
            'SecretId': arn,
            'VersionStage': version_stage,
            'MoveToVersionId': move_to_version_id
        }
        if remove_from_version_id is not None:
            params['RemoveFromVersionId'] = remove_from_version_id

        try:
            self.service_client.update_secret_version_stage(**params)
        except ClientError as e:
            logger.error(f"Error moving stage {version_stage} to {move_to_version_id} for '{arn}': {e}")
            raise

    def get_random_password(self, length: int, exclude_characters: str = '', exclude_punctuation: bool = True) -> str:
        """
        Purpose:
            Generate a secure random password using the get_random_password API.

        References:
            https://docs.aws.amazon.com/secretsmanager/latest/apireference/API_GetRandomPassword.html
        """

        params = {
            'PasswordLength': length,
            'ExcludePunctuation': exclude_punctuation,
            'IncludeSpace': False,
            'RequireEachIncludedType': True
        }
        if exclude_characters:
            params['ExcludeCharacters'] = exclude_characters

        response = self.service_client.get_random_password(**params)
        return response['RandomPassword']
