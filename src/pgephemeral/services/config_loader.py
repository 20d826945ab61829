"""Configuration loader for pgephemeral."""

from pathlib import Path
from typing import Any, Dict

import yaml

from pgephemeral.constants import DEFAULT_SSLMODE
from pgephemeral.errors import ConfigError, ConfigErrorKind
from pgephemeral.errors_catalog import actionable_error
from pgephemeral.models import ConnectionConfig


class ConfigLoader:
    """Loads the `postgres` section of a YAML configuration file."""

    SECTION = "postgres"
    REQUIRED_KEYS = ("user", "pass", "host", "port", "dbname")
    SUPPORTED_KEYS = set(REQUIRED_KEYS) | {"sslmode"}

    RUN_SECTION = "pgephemeral"
    RUN_OPTION_KEYS = {
        "tables",
        "discover_tables",
        "strict",
        "keep_database",
        "report_file",
        "verbose",
        "log_file",
    }

    def load(self, config_path: str) -> ConnectionConfig:
        path = Path(config_path)
        if not path.is_file():
            raise ConfigError(
                ConfigErrorKind.NOT_FOUND,
                actionable_error("config_not_found", path=str(config_path)),
            )

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise self._malformed(config_path, str(exc)) from exc

        if not isinstance(parsed, dict):
            raise self._malformed(config_path, "the root must be a YAML mapping")

        section = parsed.get(self.SECTION)
        if not isinstance(section, dict):
            raise self._malformed(config_path, f"missing `{self.SECTION}` mapping")

        return self._build(config_path, section)

    def load_run_options(self, config_path: str) -> Dict[str, Any]:
        """Return the optional `pgephemeral` section used as CLI defaults.

        A missing file yields no defaults; :meth:`load` reports it.
        """
        path = Path(config_path)
        if not path.is_file():
            return {}

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise self._malformed(config_path, str(exc)) from exc

        if not isinstance(parsed, dict) or parsed.get(self.RUN_SECTION) is None:
            return {}

        section = parsed[self.RUN_SECTION]
        if not isinstance(section, dict):
            raise self._malformed(config_path, f"`{self.RUN_SECTION}` must be a mapping")

        unknown = sorted(set(section.keys()) - self.RUN_OPTION_KEYS)
        if unknown:
            raise self._malformed(config_path, f"unknown keys: {', '.join(unknown)}")

        tables = section.get("tables")
        if tables is not None and not (
            isinstance(tables, list) and all(isinstance(table, str) for table in tables)
        ):
            raise self._malformed(config_path, "`tables` must be a list of table names")

        return section

    def _build(self, config_path: str, section: Dict[str, Any]) -> ConnectionConfig:
        unknown = sorted(set(section.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            raise self._malformed(config_path, f"unknown keys: {', '.join(unknown)}")

        missing = [key for key in self.REQUIRED_KEYS if section.get(key) in (None, "")]
        if missing:
            raise self._malformed(config_path, f"missing keys: {', '.join(missing)}")

        port = section["port"]
        if isinstance(port, bool):
            raise self._malformed(config_path, "port must be an integer")
        try:
            port = int(port)
        except (TypeError, ValueError) as exc:
            raise self._malformed(config_path, f"port must be an integer, got {port!r}") from exc
        if not 1 <= port <= 65535:
            raise self._malformed(config_path, f"port out of range: {port}")

        return ConnectionConfig(
            user=str(section["user"]),
            password=str(section["pass"]),
            host=str(section["host"]),
            port=port,
            dbname=str(section["dbname"]),
            sslmode=str(section.get("sslmode") or DEFAULT_SSLMODE),
        )

    @staticmethod
    def _malformed(config_path: str, reason: str) -> ConfigError:
        return ConfigError(
            ConfigErrorKind.MALFORMED,
            actionable_error("config_malformed", path=str(config_path), reason=reason),
        )
