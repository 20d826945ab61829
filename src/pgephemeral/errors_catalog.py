"""Actionable error catalog for pgephemeral."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "config_not_found": {
        "what": "Config file not found: {path}",
        "next": "Pass `--config` or create `.pgephemeral.yml` with a `postgres` section.",
    },
    "config_malformed": {
        "what": "Invalid config file '{path}': {reason}",
        "next": "The `postgres` section needs `user`, `pass`, `host`, `port` and `dbname`.",
    },
    "tool_not_found": {
        "what": "Required command not found: {tool}.",
        "next": "Install the PostgreSQL client tools and make sure `{tool}` is on PATH.",
    },
    "provision_failed": {
        "what": "Could not provision ephemeral database '{name}': {reason}",
        "next": "Check that the configured user may create databases on {host}:{port}.",
    },
    "teardown_failed": {
        "what": "Could not drop ephemeral database '{name}': {reason}",
        "next": "Drop it manually with `DROP DATABASE IF EXISTS {name}` once no session uses it.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
