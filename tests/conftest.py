"""In-memory stand-ins for Secrets Manager and the database."""

import copy
import itertools

import pymysql
import pytest

from single_user_rotation.config import RotationConfig
from single_user_rotation.exceptions import SecretNotFoundError, SecretVersionExistsError
from single_user_rotation.rotation import RotationController
from single_user_rotation.secret_store import (
    SecretMetadata,
    VERSION_STAGE_CURRENT,
    VERSION_STAGE_PENDING,
    VERSION_STAGE_PREVIOUS,
)

SECRET_ARN = "arn:aws:secretsmanager:ap-northeast-1:123456789012:secret:MySecret-abc123"
CURRENT_VERSION = "11111111-1111-1111-1111-111111111111"
PREVIOUS_VERSION = "00000000-0000-0000-0000-000000000000"
TOKEN = "e4bfd8c9-5b1a-4492-934d-2d7ac03ef6c5"


def make_secret(password="p0", username="u", **overrides):
    secret = {
        "engine": "mysql",
        "host": "db.example.internal",
        "port": 3306,
        "username": username,
        "password": password,
        "dbname": "appdb",
    }
    secret.update(overrides)
    return secret


class FakeSecretStore:
    """Mimics the stage bookkeeping Secrets Manager does for one secret."""

    def __init__(self, rotation_enabled=True):
        self.rotation_enabled = rotation_enabled
        # version id -> {"payload": dict | None, "stages": set}
        self.versions = {}
        self.puts = []
        self.stage_moves = []
        self._passwords = itertools.count(1)

    def add_version(self, version_id, payload, *stages):
        self.versions[version_id] = {"payload": copy.deepcopy(payload), "stages": set(stages)}

    def stages_of(self, version_id):
        return self.versions[version_id]["stages"]

    def payload_of(self, version_id):
        return self.versions[version_id]["payload"]

    def versions_with(self, stage):
        return [v for v, entry in self.versions.items() if stage in entry["stages"]]

    def describe_secret(self, arn):
        return SecretMetadata(
            rotation_enabled=self.rotation_enabled,
            versions={v: set(entry["stages"]) for v, entry in self.versions.items()},
        )

    def get_secret_value(self, arn, version_stage=VERSION_STAGE_CURRENT, token=None):
        for version_id, entry in self.versions.items():
            if token is not None and version_id != token:
                continue
            if version_stage in entry["stages"] and entry["payload"] is not None:
                return copy.deepcopy(entry["payload"])
        raise SecretNotFoundError(f"{arn} {version_stage} {token}")

    def put_secret_value(self, arn, token, secret, version_stages):
        existing = self.versions.get(token)
        if existing is not None and existing["payload"] is not None:
            raise SecretVersionExistsError(token)
        stages = set(version_stages)
        for entry in self.versions.values():
            entry["stages"] -= stages
        if existing is not None:
            stages |= existing["stages"]
        self.versions[token] = {"payload": copy.deepcopy(secret), "stages": stages}
        self.puts.append((token, copy.deepcopy(secret), sorted(version_stages)))

    def update_secret_version_stage(self, arn, version_stage, move_to_version_id, remove_from_version_id):
        self.stage_moves.append((version_stage, move_to_version_id, remove_from_version_id))
        if remove_from_version_id is not None:
            self.versions[remove_from_version_id]["stages"].discard(version_stage)
        self.versions[move_to_version_id]["stages"].add(version_stage)
        if version_stage == VERSION_STAGE_CURRENT and remove_from_version_id is not None:
            for entry in self.versions.values():
                entry["stages"].discard(VERSION_STAGE_PREVIOUS)
            self.versions[remove_from_version_id]["stages"].add(VERSION_STAGE_PREVIOUS)

    def get_random_password(self, length, exclude_characters="", exclude_punctuation=True):
        return f"generated{next(self._passwords)}".ljust(length, "x")


class FakeConnection:
    def __init__(self, username):
        self.username = username
        self.closed = False


class FakeCredentialTarget:
    """A database with one password per user."""

    def __init__(self, users=None, liveness_error=None):
        self.users = dict(users or {})
        self.liveness_error = liveness_error
        self.login_attempts = []
        self.password_changes = []
        self.connections = []

    @property
    def open_connections(self):
        return [c for c in self.connections if not c.closed]

    def try_connect(self, secret):
        self.login_attempts.append((secret["username"], secret["password"]))
        if self.users.get(secret["username"]) != secret["password"]:
            return None
        conn = FakeConnection(secret["username"])
        self.connections.append(conn)
        return conn

    def change_password(self, conn, username, password):
        assert not conn.closed
        self.password_changes.append((conn.username, username, password))
        # CURRENT_USER(): the account logged in on this connection
        self.users[conn.username] = password

    def check_liveness(self, conn):
        if self.liveness_error is not None:
            raise self.liveness_error

    def close(self, conn):
        conn.closed = True


@pytest.fixture
def store():
    """Secret with AWSCURRENT {u, p0} and a fresh AWSPENDING token without a value."""
    fake = FakeSecretStore()
    fake.add_version(CURRENT_VERSION, make_secret("p0"), VERSION_STAGE_CURRENT)
    fake.add_version(TOKEN, None, VERSION_STAGE_PENDING)
    return fake


@pytest.fixture
def target():
    return FakeCredentialTarget(users={"u": "p0"})


@pytest.fixture
def controller(store, target):
    return RotationController(store, target, RotationConfig(password_length=128))


@pytest.fixture
def liveness_failure():
    return pymysql.err.OperationalError(2013, "Lost connection to MySQL server during query")
