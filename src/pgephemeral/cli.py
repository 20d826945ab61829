import logging
import os

import click
from rich.logging import RichHandler
from rich.markup import escape

from .constants import DEFAULT_CONFIG_FILE
from .core import Lifecycle, PgEphemeralError, console
from .services.command_runner import CommandRunner
from .services.config_loader import ConfigLoader
from .services.filesystem import FileSystemService
from .services.suite import CommandSuite


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.command(context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to the YAML configuration file. Defaults to {DEFAULT_CONFIG_FILE}.",
)
@click.option(
    "--table",
    "tables",
    multiple=True,
    help="Table whose triggers are disabled before the tests run. Repeat for more tables.",
)
@click.option(
    "--discover-tables",
    is_flag=True,
    default=None,
    help="Also disable triggers on every table found in the imported public schema.",
)
@click.option(
    "--strict",
    is_flag=True,
    default=None,
    help="Fail the run when the schema dump or import reports an error.",
)
@click.option(
    "--seed",
    required=False,
    help="Seed for the ephemeral database name. Reuse a logged seed to reproduce a run.",
)
@click.option(
    "--keep-database",
    is_flag=True,
    default=None,
    help="Do not drop the ephemeral database after the tests.",
)
@click.option("--report-file", type=click.Path(), help="Write a JSON run report to this path.")
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
def main(
    config,
    tables,
    discover_tables,
    strict,
    seed,
    keep_database,
    report_file,
    verbose,
    log_file,
    command,
):
    """Run COMMAND against a throwaway copy of the configured database schema."""
    logger = logging.getLogger("pgephemeral")

    config_path = config or os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
    try:
        config_values = ConfigLoader().load_run_options(config_path)
    except PgEphemeralError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        raise SystemExit(1) from exc

    tables = list(tables) or list(_resolve_option(None, config_values, "tables", default=[]))
    discover_tables = bool(
        _resolve_option(discover_tables, config_values, "discover_tables", default=False)
    )
    strict = bool(_resolve_option(strict, config_values, "strict", default=False))
    keep_database = bool(
        _resolve_option(keep_database, config_values, "keep_database", default=False)
    )
    report_file = _resolve_option(report_file, config_values, "report_file")
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")

    if not command:
        raise click.ClickException("Missing test command. Usage: pgephemeral [OPTIONS] -- COMMAND")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    lifecycle = Lifecycle(
        config_path=config_path,
        tables=tables,
        discover_tables=discover_tables,
        strict=strict,
        seed=seed,
        keep_database=keep_database,
        report_file=report_file,
    )
    suite = CommandSuite(
        command=list(command),
        command_runner=CommandRunner(logger=logger),
        filesystem_service=FileSystemService(logger=logger, console=console),
    )

    raise SystemExit(lifecycle.run(suite))


if __name__ == "__main__":
    main()
