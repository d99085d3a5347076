import itertools
from contextlib import asynccontextmanager

import pytest

from credential_vault.vault import store as store_module
from credential_vault.vault import CredentialCodec, CredentialStore, VaultConfig

# Low iteration count keeps PBKDF2 fast in tests.
TEST_ITERATIONS = 1000
TEST_SECRET = "app-secret-xyz"


class FakeConnection:
    """In-memory stand-in for an asyncpg connection over encrypted_credentials."""

    def __init__(self, table: dict):
        self.table = table
        self._ids = itertools.count(1)
        self.insert_error = None

    async def fetch(self, query, user_id):
        assert query is store_module._SELECT_USER_CREDENTIALS
        rows = [row for (uid, _), row in self.table.items() if uid == user_id]
        return sorted(rows, key=lambda r: r["created_at"], reverse=True)

    async def fetchrow(self, query, user_id, name):
        row = self.table.get((user_id, name))
        if row is None:
            return None
        if query is store_module._SELECT_EXISTING:
            return {"id": row["id"]}
        assert query is store_module._SELECT_ENVELOPE
        return {
            column: row[column]
            for column in ("encrypted_value", "salt", "iv", "auth_tag")
        }

    async def execute(self, query, user_id, name, *values):
        if query is store_module._INSERT_CREDENTIAL:
            if self.insert_error is not None:
                raise self.insert_error
            seq = next(self._ids)
            self.table[(user_id, name)] = {
                "id": seq,
                "user_id": user_id,
                "name": name,
                "encrypted_value": values[0],
                "salt": values[1],
                "iv": values[2],
                "auth_tag": values[3],
                "created_at": seq,
                "updated_at": None,
            }
            return "INSERT 0 1"
        if query is store_module._UPDATE_CREDENTIAL:
            row = self.table[(user_id, name)]
            row.update(
                encrypted_value=values[0],
                salt=values[1],
                iv=values[2],
                auth_tag=values[3],
                updated_at="now",
            )
            return "UPDATE 1"
        assert query is store_module._DELETE_CREDENTIAL
        removed = self.table.pop((user_id, name), None)
        return f"DELETE {1 if removed else 0}"


class FakePool:
    def __init__(self):
        self.table = {}
        self.conn = FakeConnection(self.table)

    @asynccontextmanager
    async def acquire(self):
        yield self.conn


@pytest.fixture
def config():
    return VaultConfig(master_secret=TEST_SECRET, kdf_iterations=TEST_ITERATIONS)


@pytest.fixture
def codec(config):
    return CredentialCodec(config)


@pytest.fixture
def unconfigured_codec():
    return CredentialCodec(VaultConfig(kdf_iterations=TEST_ITERATIONS))


@pytest.fixture
def pool():
    return FakePool()


@pytest.fixture
def store(codec, pool):
    return CredentialStore(codec, pool)
