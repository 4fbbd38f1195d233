# Standard library (Python built-in modules)
import logging
import os
from typing import Dict, Optional, Any

# External library
import pymysql

from single_user_rotation.config import DEFAULT_CONNECTION_TIMEOUT

logger = logging.getLogger(__name__)

DEFAULT_MYSQL_PORT = 3306

# MySQL Error Codes
MYSQL_ERROR_ACCESS_DENIED = 1045
MYSQL_ERROR_ACCESS_DENIED_DB = 1044
MYSQL_ERROR_CONNECTION_REFUSED = 2003
MYSQL_ERROR_UNKNOWN_HOST = 2005
MYSQL_ERROR_SERVER_GONE = 2006


class MySQLCredentialTarget:
    """
    Purpose:
        The database whose user password is being rotated, reached through PyMySQL over SSL/TLS.

    SSL/TLS Configuration:
        - If ca_bundle_path is set and the file exists:
          Uses explicit CA certificate with VERIFY_IDENTITY mode (full validation)
        - Otherwise:
          Uses system default CA certificates with certificate verification

    References:
        https://pymysql.readthedocs.io/en/latest/modules/connections.html
        https://docs.aws.amazon.com/AmazonRDS/latest/UserGuide/UsingWithRDS.SSL.html
    """

    def __init__(self, ca_bundle_path: Optional[str] = None, connection_timeout: int = DEFAULT_CONNECTION_TIMEOUT):
        self.ca_bundle_path = ca_bundle_path
        self.connection_timeout = connection_timeout

    def connect(self, secret: Dict[str, Any]) -> pymysql.Connection:
        """
        Purpose:
            Open a TLS connection using the host, port, username, password and dbname of a secret.

        Raises:
            pymysql.err.OperationalError: If connection or authentication fails
            pymysql.err.MySQLError: For other MySQL-related errors
        """

        connection_params = {
            'host': secret['host'],
            'port': int(secret.get('port') or DEFAULT_MYSQL_PORT),
            'user': secret['username'],
            'password': secret['password'],
            'connect_timeout': self.connection_timeout,
            'read_timeout': self.connection_timeout,
            'write_timeout': self.connection_timeout,
            'ssl_disabled': False,  # Enable SSL/TLS
            'ssl_verify_cert': True,  # Verify server certificate
            'ssl_verify_identity': True  # Verify hostname matches certificate
        }
        if secret.get('dbname'):
            connection_params['database'] = secret['dbname']

        # Mode 1: Use explicit CA certificate path (custom CA or specific AWS RDS CA bundle version)
        if self.ca_bundle_path and os.path.exists(self.ca_bundle_path):
            logger.info(f"Using SSL with explicit CA bundle: {self.ca_bundle_path}")
            connection_params['ssl_ca'] = self.ca_bundle_path
        # Mode 2: Use system default CA certificates (includes AWS RDS CA bundle)
        else:
            logger.info("Using SSL with system default CA certificates")

        return pymysql.connect(**connection_params)

    def try_connect(self, secret: Dict[str, Any]) -> Optional[pymysql.Connection]:
        """
        Purpose:
            Open a connection and verify it with SELECT 1.

        Returns:
            pymysql.Connection: Verified open connection, owned by the caller
            None: If the credential cannot log in or the server is unreachable

        Note:
            A connection that opens but fails verification is closed before
            returning None.
        """

        username = secret.get('username')
        conn = None
        try:
            conn = self.connect(secret)
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
            logger.info(f"Established database connection for user: {username}")
            return conn

        except (pymysql.MySQLError, OSError) as e:
            error_code = e.args[0] if isinstance(e, pymysql.MySQLError) and e.args else None

            # Authentication errors (error codes: 1045, 1044)
            if error_code in (MYSQL_ERROR_ACCESS_DENIED, MYSQL_ERROR_ACCESS_DENIED_DB):
                logger.info(f"Authentication failed for user {username}: {str(e)}")
            # Connection errors (error codes: 2003, 2005, 2006)
            elif error_code in (MYSQL_ERROR_CONNECTION_REFUSED, MYSQL_ERROR_UNKNOWN_HOST, MYSQL_ERROR_SERVER_GONE):
                logger.warning(f"Cannot connect to database at {secret.get('host')}: {str(e)}")
            else:
                logger.warning(f"Database error while connecting as {username}: {str(e)}")

            if conn is not None:
                self.close(conn)
            return None

    def change_password(self, conn: pymysql.Connection, username: str, password: str) -> None:
        """
        Purpose:
            Set a new password for the account ``conn`` is logged in as, and commit.

        Note:
            CURRENT_USER() resolves to the exact 'user'@'host' account MySQL
            matched at login, whatever its host pattern. ``username`` is only
            used for logging. The password is passed as a query parameter.
        """

        logger.info(f"Updating password for user '{username}'")
        with conn.cursor() as cur:
            cur.execute("ALTER USER CURRENT_USER() IDENTIFIED BY %s", (password,))
        conn.commit()

    def check_liveness(self, conn: pymysql.Connection) -> None:
        with conn.cursor() as cur:
            cur.execute("SELECT NOW()")
            cur.fetchone()

    def close(self, conn: pymysql.Connection) -> None:
        # Closing a dead connection raises; nothing is left to release at that point
        try:
            conn.close()
        except pymysql.MySQLError as e:
            logger.warning(f"Error while closing database connection: {str(e)}")
