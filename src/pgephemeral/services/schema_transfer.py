"""Schema dump/import capability for pgephemeral."""

from dataclasses import dataclass
from typing import Dict

from pgephemeral.constants import PG_DUMP_BINARY, PSQL_BINARY
from pgephemeral.models import ConnectionConfig


@dataclass(frozen=True)
class TransferResult:
    returncode: int
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class SchemaTransfer:
    """Moves a schema out of one database and into another.

    ``dump`` writes the source schema as SQL text to ``output_path``;
    ``load`` applies such a file to the database named in ``config``.
    Implementations report tool failures through the returned
    :class:`TransferResult` and leave the strict/lenient decision to callers.
    """

    def dump(self, config: ConnectionConfig, output_path: str) -> TransferResult:
        raise NotImplementedError

    def load(self, config: ConnectionConfig, input_path: str) -> TransferResult:
        raise NotImplementedError


class PgToolsSchemaTransfer(SchemaTransfer):
    """Schema transfer through the ``pg_dump`` and ``psql`` client tools."""

    def __init__(self, command_runner, filesystem_service, on_error_stop: bool = False):
        self.command_runner = command_runner
        self.filesystem_service = filesystem_service
        self.on_error_stop = on_error_stop

    @staticmethod
    def _env(passfile: str, config: ConnectionConfig) -> Dict[str, str]:
        return {"PGPASSFILE": passfile, "PGSSLMODE": config.sslmode}

    def dump(self, config: ConnectionConfig, output_path: str) -> TransferResult:
        cmd = [
            PG_DUMP_BINARY,
            f"--host={config.host}",
            f"--port={config.port}",
            f"--username={config.user}",
            "--schema-only",
            config.dbname,
        ]
        with self.filesystem_service.credential_file(config) as passfile:
            with open(output_path, "w", encoding="utf-8", newline="\n") as file_obj:
                result = self.command_runner.run(
                    cmd,
                    check=False,
                    env=self._env(passfile, config),
                    stdout=file_obj,
                )
        return TransferResult(result.returncode, (result.stderr or "").strip())

    def load(self, config: ConnectionConfig, input_path: str) -> TransferResult:
        cmd = [
            PSQL_BINARY,
            f"--dbname={config.dbname}",
            f"--host={config.host}",
            f"--port={config.port}",
            f"--username={config.user}",
            f"--file={input_path}",
        ]
        if self.on_error_stop:
            cmd.append("--set=ON_ERROR_STOP=1")

        with self.filesystem_service.credential_file(config) as passfile:
            result = self.command_runner.run(
                cmd,
                check=False,
                capture_output=True,
                env=self._env(passfile, config),
            )
        return TransferResult(result.returncode, (result.stderr or "").strip())
