import os
import re

import pytest

from pgephemeral.errors import DatabaseConnectionError, ProvisionError, SchemaImportError
from pgephemeral.services.ephemeral import (
    EphemeralDatabaseManager,
    ephemeral_database_name,
    new_seed,
)

IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")


class DummyLogger:
    def __init__(self):
        self.warnings = []

    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, message, *args, **_kwargs):
        self.warnings.append(message % args if args else message)


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


def _manager(server, transfer, strict=False, logger=None):
    return EphemeralDatabaseManager(
        connector=server,
        transfer=transfer,
        logger=logger or DummyLogger(),
        console=DummyConsole(),
        strict=strict,
    )


@pytest.fixture
def dump_file(tmp_path):
    path = tmp_path / "schema.sql"
    path.write_text("CREATE TABLE users (id integer);\n", encoding="utf-8")
    return str(path)


def test_name_is_stable_for_the_same_seed():
    assert ephemeral_database_name("app", "seed-1") == ephemeral_database_name("app", "seed-1")
    assert re.match(r"^app_[0-9a-f]{16}$", ephemeral_database_name("app", "seed-1"))


def test_names_differ_across_seeds():
    names = {ephemeral_database_name("app", new_seed()) for _ in range(500)}

    assert len(names) == 500


@pytest.mark.parametrize(
    "source",
    ["app", "App-Prod", "9lives", "", "weird name; DROP", "x" * 200, "ünïcode_db", "schema.table"],
)
def test_name_is_a_valid_unquoted_identifier(source):
    name = ephemeral_database_name(source, "seed")

    assert IDENTIFIER.match(name)
    assert len(name) <= 57 < 63


def test_drop_if_exists_tolerates_absent_database(connection_config, make_server, make_transfer):
    server = make_server()

    _manager(server, make_transfer()).drop_if_exists(connection_config, "app_missing")

    assert server.statements == [("template1", 'DROP DATABASE IF EXISTS "app_missing"')]
    assert server.open_handles == []


def test_provision_creates_database_and_imports_schema(
    connection_config, make_server, make_transfer, dump_file
):
    server = make_server()
    transfer = make_transfer()

    ephemeral = _manager(server, transfer).provision(connection_config, dump_file, seed="s1")

    name = ephemeral_database_name("app", "s1")
    assert ephemeral.name == name
    assert ephemeral.config.dbname == name
    assert ephemeral.config.user == "t"
    assert server.statements == [
        ("template1", f'DROP DATABASE IF EXISTS "{name}"'),
        ("app", f"CREATE DATABASE \"{name}\" WITH ENCODING 'UTF8'"),
    ]
    assert [handle.dbname for handle in server.handles] == ["template1", "app", name]
    assert server.open_handles == [ephemeral.handle]
    assert transfer.loads == [(name, "CREATE TABLE users (id integer);\n")]
    assert os.path.exists(dump_file)


def test_provision_then_drop_leaves_no_database(
    connection_config, make_server, make_transfer, dump_file
):
    server = make_server()
    manager = _manager(server, make_transfer())

    ephemeral = manager.provision(connection_config, dump_file, seed="s2")
    assert ephemeral.name in server.databases

    manager.drop_test_db(ephemeral)

    assert ephemeral.name not in server.databases
    assert ephemeral.handle is None
    assert server.open_handles == []
    assert server.databases == {"template1", "app"}


def test_provision_replaces_a_stale_database(connection_config, make_server, make_transfer, dump_file):
    name = ephemeral_database_name("app", "stale")
    server = make_server(databases=("template1", "app", name))

    _manager(server, make_transfer()).provision(connection_config, dump_file, seed="stale")

    assert server.sql_for("DROP DATABASE")[0][1] == f'DROP DATABASE IF EXISTS "{name}"'
    assert name in server.databases


def test_provision_fails_when_admin_database_is_unreachable(
    connection_config, make_server, make_transfer, dump_file
):
    server = make_server(refuse=("template1",))

    with pytest.raises(ProvisionError, match="Suggested action"):
        _manager(server, make_transfer()).provision(connection_config, dump_file, seed="s3")

    assert server.statements == []


def test_provision_closes_source_handle_when_create_fails(
    connection_config, make_server, make_transfer, dump_file
):
    server = make_server(fail_on="CREATE DATABASE")

    with pytest.raises(ProvisionError, match="Could not provision"):
        _manager(server, make_transfer()).provision(connection_config, dump_file, seed="s4")

    assert server.open_handles == []


def test_failed_import_is_only_a_warning_by_default(
    connection_config, make_server, make_transfer, dump_file
):
    logger = DummyLogger()
    server = make_server()

    ephemeral = _manager(server, make_transfer(load_returncode=3), logger=logger).provision(
        connection_config, dump_file, seed="s5"
    )

    assert ephemeral.handle is not None
    assert any("exited with status 3" in message for message in logger.warnings)


def test_strict_import_failure_raises_and_releases_handle(
    connection_config, make_server, make_transfer, dump_file
):
    server = make_server()

    with pytest.raises(SchemaImportError, match="load broke"):
        _manager(server, make_transfer(load_returncode=3), strict=True).provision(
            connection_config, dump_file, seed="s6"
        )

    assert server.open_handles == []
    assert ephemeral_database_name("app", "s6") in server.databases


def test_teardown_failure_is_reported(connection_config, make_server, make_transfer, dump_file):
    server = make_server()
    manager = _manager(server, make_transfer())
    ephemeral = manager.provision(connection_config, dump_file, seed="s7")
    server.refuse.add("template1")

    with pytest.raises(ProvisionError, match="Could not drop ephemeral database"):
        manager.drop_test_db(ephemeral)


def test_teardown_drops_database_even_when_close_fails(
    connection_config, make_server, make_transfer, dump_file
):
    logger = DummyLogger()
    server = make_server()
    manager = _manager(server, make_transfer(), logger=logger)
    ephemeral = manager.provision(connection_config, dump_file, seed="s8")

    def flaky_close(handle):
        if handle is None:
            return
        handle.close()
        if handle.dbname == ephemeral.name:
            raise DatabaseConnectionError("server closed the connection unexpectedly")

    server.close = flaky_close

    manager.drop_test_db(ephemeral)

    assert ephemeral.handle is None
    assert ephemeral.name not in server.databases
    assert server.sql_for("DROP DATABASE")[-1] == (
        "template1",
        f'DROP DATABASE IF EXISTS "{ephemeral.name}"',
    )
    assert any("server closed the connection" in message for message in logger.warnings)
