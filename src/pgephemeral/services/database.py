"""PostgreSQL connection services for pgephemeral."""

from typing import Any, List, Optional

import psycopg2

from pgephemeral.errors import DatabaseConnectionError, StatementError
from pgephemeral.models import ConnectionConfig


class DatabaseHandle:
    """An open autocommit connection bound to exactly one database."""

    def __init__(self, connection, dbname: str, logger):
        self.connection = connection
        self.dbname = dbname
        self.logger = logger

    @property
    def closed(self) -> bool:
        return bool(self.connection.closed)

    def _render(self, statement) -> str:
        if isinstance(statement, str):
            return statement
        try:
            return statement.as_string(self.connection)
        except (psycopg2.Error, TypeError, ValueError):
            return repr(statement)

    def execute(self, statement, params: Optional[Any] = None):
        text = self._render(statement)
        self.logger.debug("[%s] %s", self.dbname, text)
        try:
            with self.connection.cursor() as cursor:
                cursor.execute(statement, params)
        except psycopg2.Error as exc:
            message = f"Statement failed on '{self.dbname}': {text}\n{str(exc).strip()}"
            raise StatementError(text, message) from exc

    def fetch_column(self, statement, params: Optional[Any] = None) -> List[Any]:
        text = self._render(statement)
        self.logger.debug("[%s] %s", self.dbname, text)
        try:
            with self.connection.cursor() as cursor:
                cursor.execute(statement, params)
                return [row[0] for row in cursor.fetchall()]
        except psycopg2.Error as exc:
            message = f"Query failed on '{self.dbname}': {text}\n{str(exc).strip()}"
            raise StatementError(text, message) from exc

    def close(self):
        if self.closed:
            return
        try:
            self.connection.close()
        except psycopg2.Error as exc:
            raise DatabaseConnectionError(
                f"Could not close connection to '{self.dbname}': {exc}"
            ) from exc
        self.logger.debug("Closed connection to %s", self.dbname)


class DatabaseConnector:
    """Opens and closes connections to named databases.

    Connections are opened eagerly: ``connect`` talks to the server right
    away, so a missing database or bad credentials fail here rather than on
    first use. Every handle runs in autocommit mode because ``CREATE DATABASE``
    and ``DROP DATABASE`` cannot run inside a transaction block.
    """

    def __init__(self, logger, driver_module=psycopg2):
        self.logger = logger
        self.driver = driver_module

    def connect(
        self,
        user: str,
        password: str,
        dbname: str,
        host: str,
        port: int,
        sslmode: Optional[str] = None,
    ) -> DatabaseHandle:
        params = {
            "user": user,
            "password": password,
            "dbname": dbname,
            "host": host,
            "port": int(port),
        }
        if sslmode:
            params["sslmode"] = sslmode

        self.logger.debug("Connecting to %s@%s:%s/%s", user, host, port, dbname)
        try:
            connection = self.driver.connect(**params)
            connection.autocommit = True
        except psycopg2.Error as exc:
            raise DatabaseConnectionError(
                f"Could not connect to database '{dbname}' at {host}:{port} as {user}: "
                f"{str(exc).strip()}"
            ) from exc

        return DatabaseHandle(connection, dbname=dbname, logger=self.logger)

    def connect_to(self, config: ConnectionConfig) -> DatabaseHandle:
        return self.connect(
            user=config.user,
            password=config.password,
            dbname=config.dbname,
            host=config.host,
            port=config.port,
            sslmode=config.sslmode,
        )

    @staticmethod
    def close(handle: Optional[DatabaseHandle]):
        if handle is None:
            return
        handle.close()
