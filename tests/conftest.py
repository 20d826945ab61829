from typing import List, Optional, Tuple

import pytest
from psycopg2 import sql

from pgephemeral.errors import DatabaseConnectionError, StatementError
from pgephemeral.models import ConnectionConfig
from pgephemeral.services.schema_transfer import SchemaTransfer, TransferResult


def render(statement) -> str:
    if isinstance(statement, str):
        return " ".join(statement.split())
    if isinstance(statement, sql.Composed):
        return "".join(render(part) for part in statement.seq)
    if isinstance(statement, sql.SQL):
        return statement.string
    if isinstance(statement, sql.Identifier):
        return ".".join('"{}"'.format(part.replace('"', '""')) for part in statement.strings)
    if isinstance(statement, sql.Literal):
        return "'{}'".format(statement.wrapped)
    raise TypeError(f"Cannot render {statement!r}")


class FakeHandle:
    def __init__(self, server: "FakeServer", dbname: str):
        self.server = server
        self.dbname = dbname
        self.closed = False

    def execute(self, statement, params=None):
        assert not self.closed, "statement on a closed handle"
        text = render(statement)
        self.server.statements.append((self.dbname, text))
        if self.server.fail_on and self.server.fail_on in text:
            raise StatementError(text, f"Statement failed on '{self.dbname}': {text}")

        if text.startswith("CREATE DATABASE "):
            self.server.databases.add(text.split('"')[1])
        elif text.startswith("DROP DATABASE IF EXISTS "):
            self.server.databases.discard(text.split('"')[1])

    def fetch_column(self, statement, params=None):
        self.server.statements.append((self.dbname, render(statement)))
        return list(self.server.tables)

    def close(self):
        self.closed = True


class FakeServer:
    """In-memory stand-in for a PostgreSQL server reached through DatabaseConnector."""

    def __init__(self, databases=("template1", "app"), tables=(), fail_on=None, refuse=()):
        self.databases = set(databases)
        self.tables = list(tables)
        self.fail_on = fail_on
        self.refuse = set(refuse)
        self.statements: List[Tuple[str, str]] = []
        self.handles: List[FakeHandle] = []

    def connect_to(self, config: ConnectionConfig) -> FakeHandle:
        if config.dbname in self.refuse or config.dbname not in self.databases:
            raise DatabaseConnectionError(f"Could not connect to database '{config.dbname}'")
        assert not self.open_handles, "a second handle was opened while one is live"
        handle = FakeHandle(self, config.dbname)
        self.handles.append(handle)
        return handle

    @staticmethod
    def close(handle: Optional[FakeHandle]):
        if handle is None:
            return
        handle.close()

    @property
    def open_handles(self) -> List[FakeHandle]:
        return [handle for handle in self.handles if not handle.closed]

    def sql_for(self, prefix: str) -> List[Tuple[str, str]]:
        return [entry for entry in self.statements if entry[1].startswith(prefix)]


class FakeTransfer(SchemaTransfer):
    def __init__(self, dump_returncode=0, load_returncode=0, ddl="CREATE TABLE users (id integer);\n"):
        self.dump_returncode = dump_returncode
        self.load_returncode = load_returncode
        self.ddl = ddl
        self.dumps: List[str] = []
        self.loads: List[Tuple[str, str]] = []

    def dump(self, config, output_path):
        self.dumps.append(config.dbname)
        with open(output_path, "w", encoding="utf-8") as file_obj:
            file_obj.write(self.ddl)
        return TransferResult(self.dump_returncode, "" if self.dump_returncode == 0 else "dump broke")

    def load(self, config, input_path):
        with open(input_path, "r", encoding="utf-8") as file_obj:
            self.loads.append((config.dbname, file_obj.read()))
        return TransferResult(self.load_returncode, "" if self.load_returncode == 0 else "load broke")


@pytest.fixture
def connection_config() -> ConnectionConfig:
    return ConnectionConfig(user="t", password="t", host="localhost", port=5432, dbname="app")


@pytest.fixture
def make_server():
    return FakeServer


@pytest.fixture
def make_transfer():
    return FakeTransfer


@pytest.fixture
def render_sql():
    return render
