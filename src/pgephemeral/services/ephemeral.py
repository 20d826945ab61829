"""Ephemeral database naming, provisioning and teardown."""

import hashlib
import re
import secrets
from typing import Optional

from psycopg2 import sql
from rich.markup import escape

from pgephemeral.constants import (
    ADMIN_DATABASE,
    DATABASE_ENCODING,
    NAME_HASH_LENGTH,
    NAME_PREFIX_MAX_LENGTH,
)
from pgephemeral.errors import (
    CommandError,
    DatabaseConnectionError,
    ProvisionError,
    SchemaImportError,
    StatementError,
)
from pgephemeral.errors_catalog import actionable_error
from pgephemeral.models import ConnectionConfig, EphemeralDatabase

_INVALID_IDENTIFIER_CHARS = re.compile(r"[^a-z0-9_]")


def new_seed() -> str:
    return secrets.token_hex(8)


def ephemeral_database_name(source_name: str, seed: str) -> str:
    """Derive the ephemeral database name for ``source_name`` and ``seed``.

    The result is ``<prefix>_<16 hex digits>``: the prefix is the source name
    folded to ``[a-z0-9_]`` and cut to 40 characters, the suffix is the first
    64 bits of ``sha256("<source_name>:<seed>")``. Names are at most 57
    characters, inside PostgreSQL's 63-byte identifier limit, and never need
    quoting. Over ``n`` runs the chance of two names colliding is about
    ``n**2 / 2**65``. The same pair always gives the same name, so a run can be
    replayed by reusing its seed.
    """
    prefix = _INVALID_IDENTIFIER_CHARS.sub("_", source_name.lower())
    if not prefix:
        prefix = "db"
    if prefix[0].isdigit():
        prefix = f"_{prefix}"
    prefix = prefix[:NAME_PREFIX_MAX_LENGTH]

    digest = hashlib.sha256(f"{source_name}:{seed}".encode("utf-8")).hexdigest()
    return f"{prefix}_{digest[:NAME_HASH_LENGTH]}"


class EphemeralDatabaseManager:
    """Creates the throwaway test database, loads its schema and drops it."""

    def __init__(
        self,
        connector,
        transfer,
        logger,
        console,
        strict: bool = False,
        admin_database: str = ADMIN_DATABASE,
    ):
        self.connector = connector
        self.transfer = transfer
        self.logger = logger
        self.console = console
        self.strict = strict
        self.admin_database = admin_database

    def _provision_error(self, config: ConnectionConfig, name: str, exc: Exception) -> ProvisionError:
        return ProvisionError(
            actionable_error(
                "provision_failed",
                name=name,
                reason=str(exc),
                host=config.host,
                port=str(config.port),
            )
        )

    def drop_if_exists(self, config: ConnectionConfig, name: str):
        """Drop ``name`` through the administrative database; absent names are fine."""
        handle = self.connector.connect_to(config.with_dbname(self.admin_database))
        try:
            handle.execute(sql.SQL("DROP DATABASE IF EXISTS {}").format(sql.Identifier(name)))
        finally:
            self.connector.close(handle)
        self.logger.debug("Dropped database %s if it existed", name)

    def provision(
        self,
        config: ConnectionConfig,
        dump_file: str,
        seed: Optional[str] = None,
        name: Optional[str] = None,
    ) -> EphemeralDatabase:
        """Create the ephemeral database and import ``dump_file`` into it."""
        if name is None:
            name = ephemeral_database_name(config.dbname, seed if seed is not None else new_seed())

        ephemeral = self.create(config, name)
        try:
            self.import_schema(ephemeral, dump_file)
        except BaseException:
            self._close_quietly(ephemeral.handle)
            ephemeral.handle = None
            raise
        return ephemeral

    def create(self, config: ConnectionConfig, name: str) -> EphemeralDatabase:
        """Drop any stale ``name``, create it afresh and connect to it.

        ``CREATE DATABASE`` is issued over a connection to the source
        database; that handle is closed before the new database is opened, so
        only one handle is ever live.
        """
        self.console.print(f"[blue]Provisioning ephemeral database '{name}'...[/blue]")
        self.logger.info("Provisioning ephemeral database %s from %s", name, config.dbname)

        try:
            self.drop_if_exists(config, name)
        except (DatabaseConnectionError, StatementError) as exc:
            raise self._provision_error(config, name, exc) from exc

        handle = None
        try:
            handle = self.connector.connect_to(config)
            handle.execute(
                sql.SQL("CREATE DATABASE {} WITH ENCODING {}").format(
                    sql.Identifier(name), sql.Literal(DATABASE_ENCODING)
                )
            )
            self.connector.close(handle)
            handle = None

            ephemeral_config = config.with_dbname(name)
            handle = self.connector.connect_to(ephemeral_config)
        except (DatabaseConnectionError, StatementError) as exc:
            if handle is not None:
                self._close_quietly(handle)
            raise self._provision_error(config, name, exc) from exc

        return EphemeralDatabase(name=name, config=ephemeral_config, handle=handle)

    def import_schema(self, ephemeral: EphemeralDatabase, dump_file: str):
        config = ephemeral.config
        self.logger.info("Importing schema into %s", config.dbname)
        try:
            result = self.transfer.load(config, dump_file)
        except CommandError as exc:
            self._import_failed(str(exc))
            return

        if not result.ok:
            message = f"Schema import into '{config.dbname}' exited with status {result.returncode}"
            if result.stderr:
                message = f"{message}\n{result.stderr}"
            self._import_failed(message)

    def _import_failed(self, message: str):
        if self.strict:
            raise SchemaImportError(message)
        self.console.print(f"[yellow]Warning: {escape(message)}[/yellow]")
        self.logger.warning(message)

    def drop_test_db(self, ephemeral: EphemeralDatabase):
        """Close the ephemeral handle and drop the database."""
        self.console.print(f"[dim]Dropping ephemeral database '{ephemeral.name}'...[/dim]")
        self.logger.info("Dropping ephemeral database %s", ephemeral.name)
        try:
            self.connector.close(ephemeral.handle)
        except DatabaseConnectionError as exc:
            self.logger.warning("Could not close connection to %s: %s", ephemeral.name, exc)
        ephemeral.handle = None

        try:
            self.drop_if_exists(ephemeral.config, ephemeral.name)
        except (DatabaseConnectionError, StatementError) as exc:
            raise ProvisionError(
                actionable_error("teardown_failed", name=ephemeral.name, reason=str(exc))
            ) from exc

    def _close_quietly(self, handle):
        try:
            self.connector.close(handle)
        except DatabaseConnectionError as exc:
            self.logger.warning("Could not close connection to %s: %s", handle.dbname, exc)
