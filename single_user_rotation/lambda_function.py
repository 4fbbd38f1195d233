# Standard library (Python built-in modules)
import logging
from typing import Dict, Any

# External library (Pre-installed in AWS Lambda runtime environment)
import boto3

from single_user_rotation.config import RotationConfig
from single_user_rotation.credential_target import MySQLCredentialTarget
from single_user_rotation.rotation import RotationController
from single_user_rotation.secret_store import SecretsManagerStore

# ============================================================================
# Configuration and Constants
# ============================================================================
# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

# ============================================================================
# AWS Lambda Handler (First function called by AWS Secrets Manager)
# ============================================================================
# Entry point: lambda_handler()
#   → Builds: SecretsManagerStore, MySQLCredentialTarget, RotationController
#   → Routes to: create_secret, set_secret, test_secret, finish_secret
#
# ============================================================================
# Exception Handling Pattern
# ============================================================================
# 1. RotationError subclasses: rotation preconditions and outcomes (see exceptions.py)
# 2. ClientError: AWS SDK errors (Secrets Manager)
# 3. ValueError: Missing event parameters or invalid environment variables
# 4. pymysql.err.MySQLError: Database errors outside the login checks
# Every error is logged and re-raised; Secrets Manager retries the step.


def build_controller(config: RotationConfig) -> RotationController:
    # Credentials are retrieved in order: Environment variables → AWS config files → IAM role (Lambda execution role)
    service_client = boto3.client('secretsmanager')
    store = SecretsManagerStore(service_client)
    target = MySQLCredentialTarget(
        ca_bundle_path=config.ca_bundle_path,
        connection_timeout=config.connection_timeout,
    )
    return RotationController(store, target, config)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Run one rotation step for the secret named in ``event``.

    Reads RotationConfig from the environment, builds the controller with
    build_controller() and passes it SecretId, ClientRequestToken and Step.
    Returns a status-200 response; every failure is logged and re-raised so
    Secrets Manager retries the step.
    """

    request_id = getattr(context, 'aws_request_id', None)
    logger.info(f"Rotation step {event.get('Step')} requested for secret {event.get('SecretId')} (request {request_id})")

    # Validate that all required keys exist in the event
    try:
        step = event['Step']
        arn = event['SecretId']
        token = event['ClientRequestToken']
    except KeyError as e:
        logger.error(f"Missing required event parameter: {str(e)}")
        raise ValueError(f"Missing required event parameter: {str(e)}")

    config = RotationConfig.from_env()
    logger.setLevel(config.log_level)

    controller = build_controller(config)

    try:
        controller.rotate(arn, token, step)
        logger.info(f"Successfully completed rotation step {step} for secret {arn}")
        return {"statusCode": 200, "body": f"Rotation step {step} completed successfully"}

    except Exception as e:
        logger.error(f"Error during rotation step {step}: {str(e)}", exc_info=True)
        raise
