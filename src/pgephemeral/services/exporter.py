"""Source schema export for pgephemeral."""

from rich.markup import escape

from pgephemeral.errors import CommandError, ExportError
from pgephemeral.models import ConnectionConfig


class SchemaExporter:
    """Dumps the source database schema into a temporary SQL file.

    A failed dump is only a warning unless ``strict`` is set: the import and
    trigger steps that follow will surface a missing schema on their own.
    """

    def __init__(self, transfer, filesystem_service, logger, console, strict: bool = False):
        self.transfer = transfer
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console
        self.strict = strict

    def dump_schema(self, config: ConnectionConfig) -> str:
        self.console.print(f"[blue]Dumping schema of '{config.dbname}'...[/blue]")
        self.logger.info("Dumping schema of %s", config.dbname)

        dump_path = self.filesystem_service.create_dump_file(config.dbname)
        try:
            result = self.transfer.dump(config, dump_path)
        except CommandError as exc:
            self._fail(dump_path, str(exc))
            return dump_path
        except BaseException:
            self.filesystem_service.remove_file(dump_path)
            raise

        if not result.ok:
            message = f"Schema dump of '{config.dbname}' exited with status {result.returncode}"
            if result.stderr:
                message = f"{message}\n{result.stderr}"
            self._fail(dump_path, message)
        else:
            self.logger.debug("Schema dump written to %s", dump_path)
        return dump_path

    def _fail(self, dump_path: str, message: str):
        if self.strict:
            self.filesystem_service.remove_file(dump_path)
            raise ExportError(message)
        self.console.print(f"[yellow]Warning: {escape(message)}[/yellow]")
        self.logger.warning(message)
