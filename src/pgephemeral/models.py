"""Shared domain models for pgephemeral."""

from dataclasses import dataclass, replace
from typing import Any

from pgephemeral.constants import DEFAULT_SSLMODE


@dataclass(frozen=True)
class ConnectionConfig:
    """Connection parameters loaded from the `postgres` config section."""

    user: str
    password: str
    host: str
    port: int
    dbname: str
    sslmode: str = DEFAULT_SSLMODE

    def with_dbname(self, dbname: str) -> "ConnectionConfig":
        return replace(self, dbname=dbname)

    def __repr__(self) -> str:
        return (
            f"ConnectionConfig(user={self.user!r}, password='***', host={self.host!r}, "
            f"port={self.port!r}, dbname={self.dbname!r}, sslmode={self.sslmode!r})"
        )


@dataclass(frozen=True)
class RunContext:
    """Runtime identifiers isolated per execution."""

    run_id: str
    seed: str
    source_database: str
    ephemeral_database: str


@dataclass
class EphemeralDatabase:
    """A provisioned database together with the single live handle bound to it."""

    name: str
    config: ConnectionConfig
    handle: Any
