import logging
import uuid
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from rich.console import Console
from rich.markup import escape

from .errors import PgEphemeralError
from .models import ConnectionConfig, EphemeralDatabase, RunContext
from .services.command_runner import CommandRunner
from .services.config_loader import ConfigLoader
from .services.database import DatabaseConnector
from .services.ephemeral import EphemeralDatabaseManager, ephemeral_database_name, new_seed
from .services.exporter import SchemaExporter
from .services.filesystem import FileSystemService
from .services.report import RunReportService
from .services.schema_transfer import PgToolsSchemaTransfer, SchemaTransfer
from .services.triggers import TriggerDisabler

console = Console()
logger = logging.getLogger("pgephemeral")

TestCallback = Callable[[EphemeralDatabase], Optional[int]]

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


class Stage(str, Enum):
    START = "start"
    CONFIG_LOADED = "config_loaded"
    SOURCE_SCHEMA_DUMPED = "source_schema_dumped"
    EPHEMERAL_DB_CREATED = "ephemeral_db_created"
    SCHEMA_IMPORTED = "schema_imported"
    TRIGGERS_DISABLED = "triggers_disabled"
    TESTS_EXECUTING = "tests_executing"
    TORN_DOWN = "torn_down"
    EXIT = "exit"


class Lifecycle:
    """Provisions an ephemeral database, runs a test callback against it and drops it.

    Stages run strictly in order. A failure before the callback starts is
    fatal and leaves any created database in place. Once the callback has
    started, teardown always runs after it returns.
    """

    def __init__(
        self,
        config_path: str,
        tables: Optional[Iterable[str]] = None,
        discover_tables: bool = False,
        strict: bool = False,
        seed: Optional[str] = None,
        keep_database: bool = False,
        report_file: Optional[str] = None,
        connector: Optional[DatabaseConnector] = None,
        transfer: Optional[SchemaTransfer] = None,
    ):
        self.config_path = config_path
        self.tables: List[str] = list(tables or [])
        self.discover_tables = discover_tables
        self.strict = strict
        self.seed = seed or new_seed()
        self.keep_database = keep_database
        self.run_id = uuid.uuid4().hex[:10]

        self.filesystem_service = FileSystemService(logger=logger, console=console)
        self.command_runner = CommandRunner(logger=logger)
        self.config_loader = ConfigLoader()
        self.connector = connector or DatabaseConnector(logger=logger)
        self.transfer = transfer or PgToolsSchemaTransfer(
            command_runner=self.command_runner,
            filesystem_service=self.filesystem_service,
            on_error_stop=strict,
        )
        self.exporter = SchemaExporter(
            transfer=self.transfer,
            filesystem_service=self.filesystem_service,
            logger=logger,
            console=console,
            strict=strict,
        )
        self.database_manager = EphemeralDatabaseManager(
            connector=self.connector,
            transfer=self.transfer,
            logger=logger,
            console=console,
            strict=strict,
        )
        self.trigger_disabler = TriggerDisabler(logger=logger, console=console)
        self.report_service = RunReportService(report_file=report_file, logger=logger)

        self.stage = Stage.START
        self.config: Optional[ConnectionConfig] = None
        self.run_context: Optional[RunContext] = None
        self.ephemeral: Optional[EphemeralDatabase] = None
        self.dump_file: Optional[str] = None

    def _advance(self, stage: Stage, details: Optional[Dict[str, Any]] = None):
        self.stage = stage
        logger.debug("Stage reached: %s", stage.value)
        self.report_service.stage_reached(stage.value, details=details)

    def _build_run_context(self, config: ConnectionConfig) -> RunContext:
        return RunContext(
            run_id=self.run_id,
            seed=self.seed,
            source_database=config.dbname,
            ephemeral_database=ephemeral_database_name(config.dbname, self.seed),
        )

    def resolve_tables(self, handle) -> List[str]:
        tables = list(self.tables)
        if self.discover_tables:
            for table in self.trigger_disabler.list_tables(handle):
                if table not in tables:
                    tables.append(table)
        return tables

    def _prepare(self) -> EphemeralDatabase:
        self.config = self.config_loader.load(self.config_path)
        self.run_context = self._build_run_context(self.config)
        logger.info(
            "Run %s: seed %s, ephemeral database %s",
            self.run_context.run_id,
            self.run_context.seed,
            self.run_context.ephemeral_database,
        )
        self.report_service.update_metadata(
            source_database=self.run_context.source_database,
            ephemeral_database=self.run_context.ephemeral_database,
        )
        self._advance(Stage.CONFIG_LOADED)

        self.dump_file = self.exporter.dump_schema(self.config)
        self._advance(Stage.SOURCE_SCHEMA_DUMPED)

        self.ephemeral = self.database_manager.create(
            self.config, self.run_context.ephemeral_database
        )
        self._advance(Stage.EPHEMERAL_DB_CREATED)

        self.database_manager.import_schema(self.ephemeral, self.dump_file)
        self._advance(Stage.SCHEMA_IMPORTED)

        tables = self.resolve_tables(self.ephemeral.handle)
        count = self.trigger_disabler.disable_all(self.ephemeral.handle, tables)
        self._advance(Stage.TRIGGERS_DISABLED, details={"tables": count})
        return self.ephemeral

    def _release_handle(self):
        if self.ephemeral is None or self.ephemeral.handle is None:
            return
        try:
            self.connector.close(self.ephemeral.handle)
        except PgEphemeralError as exc:
            logger.warning("Could not close connection to %s: %s", self.ephemeral.name, exc)
        self.ephemeral.handle = None

    def _fail(self, message: str, exit_code: int = EXIT_FAILURE, status: str = "failed") -> int:
        self._release_handle()
        if self.ephemeral is not None:
            logger.warning("Ephemeral database %s was left in place.", self.ephemeral.name)
        self.report_service.finalize(status, exit_code, error=message)
        return exit_code

    def run(self, callback: TestCallback) -> int:
        logger.info("Starting pgephemeral...")
        self.report_service.start_run(
            run_id=self.run_id,
            metadata={
                "config_path": self.config_path,
                "seed": self.seed,
                "strict": self.strict,
                "tables": self.tables,
                "discover_tables": self.discover_tables,
            },
        )
        self._advance(Stage.START)

        try:
            ephemeral = self._prepare()
        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            return self._fail("Operation cancelled by user.", EXIT_CANCELLED, status="aborted")
        except PgEphemeralError as exc:
            console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
            logger.error(str(exc))
            return self._fail(str(exc))
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {escape(str(exc))}")
            logger.exception("Unexpected error")
            return self._fail(str(exc))
        finally:
            if self.dump_file:
                self.filesystem_service.remove_file(self.dump_file)
                self.dump_file = None

        return self._execute_and_teardown(callback, ephemeral)

    def _execute_tests(self, callback: TestCallback, ephemeral: EphemeralDatabase) -> int:
        self._advance(Stage.TESTS_EXECUTING)
        console.print(f"[bold blue]Database '{ephemeral.name}' is ready. Running tests...[/bold blue]")

        try:
            result = callback(ephemeral)
        except KeyboardInterrupt:
            console.print("[bold red]Test run cancelled by user.[/bold red]")
            logger.info("Test run cancelled by user")
            return EXIT_CANCELLED
        except PgEphemeralError as exc:
            console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
            logger.error(str(exc))
            return EXIT_FAILURE
        except Exception as exc:
            console.print(f"[bold red]Test run raised:[/bold red] {escape(str(exc))}")
            logger.exception("Test callback raised")
            return EXIT_FAILURE

        if result is None:
            return EXIT_OK
        try:
            return int(result)
        except (TypeError, ValueError):
            console.print(
                f"[bold red]Test run returned {escape(repr(result))}, expected an exit status.[/bold red]"
            )
            logger.error("Test callback returned %r, expected an exit status", result)
            return EXIT_FAILURE

    def _execute_and_teardown(self, callback: TestCallback, ephemeral: EphemeralDatabase) -> int:
        test_status = self._execute_tests(callback, ephemeral)
        if test_status == EXIT_OK:
            console.print("[green]Tests passed.[/green]")
            logger.info("Tests passed")
        else:
            console.print(f"[bold red]Tests failed with status {test_status}.[/bold red]")
            logger.error("Tests failed with status %s", test_status)

        if self.keep_database:
            self._release_handle()
            console.print(f"[yellow]Keeping ephemeral database '{ephemeral.name}'.[/yellow]")
            logger.warning("Keeping ephemeral database %s", ephemeral.name)
        else:
            try:
                self.database_manager.drop_test_db(ephemeral)
            except PgEphemeralError as exc:
                console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
                logger.error(str(exc))
                self.report_service.finalize("failed", test_status or EXIT_FAILURE, error=str(exc))
                return test_status or EXIT_FAILURE
            self._advance(Stage.TORN_DOWN)

        self._advance(Stage.EXIT)
        status = "success" if test_status == EXIT_OK else "tests_failed"
        self.report_service.finalize(status, test_status)
        return test_status
