"""Trigger disabling for fixture loading."""

from typing import Iterable, List

from psycopg2 import sql


class TriggerDisabler:
    """Disables every trigger on the given tables of the ephemeral database."""

    _TABLES_QUERY = """
        SELECT table_name
        FROM information_schema.tables
        WHERE table_schema = %s AND table_type = 'BASE TABLE'
        ORDER BY table_name
    """

    def __init__(self, logger, console):
        self.logger = logger
        self.console = console

    @staticmethod
    def _table_identifier(table: str) -> sql.Identifier:
        if "." in table:
            return sql.Identifier(*table.split(".", 1))
        return sql.Identifier(table)

    def disable_all(self, handle, tables: Iterable[str]) -> int:
        """Run ``ALTER TABLE ... DISABLE TRIGGER ALL`` per table, in order.

        The first failing statement raises :class:`StatementError`; tables
        already altered stay altered. Returns the number of tables altered.
        """
        count = 0
        for table in tables:
            handle.execute(
                sql.SQL("ALTER TABLE {} DISABLE TRIGGER ALL").format(self._table_identifier(table))
            )
            count += 1

        if count:
            self.console.print(f"[green]Disabled triggers on {count} table(s).[/green]")
        self.logger.info("Disabled triggers on %s table(s)", count)
        return count

    def list_tables(self, handle, schema: str = "public") -> List[str]:
        return [str(name) for name in handle.fetch_column(self._TABLES_QUERY, (schema,))]
