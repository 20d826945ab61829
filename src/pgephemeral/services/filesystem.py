"""Filesystem helpers for pgephemeral."""

import logging
import os
import shutil
import sys
import tempfile
from contextlib import contextmanager
from typing import Iterator

from rich.console import Console

from pgephemeral.constants import CREDENTIAL_DIR_MODE, CREDENTIAL_FILE_MODE
from pgephemeral.models import ConnectionConfig


def _escape_pgpass_field(value) -> str:
    return str(value).replace("\\", "\\\\").replace(":", "\\:")


def format_pgpass_line(config: ConnectionConfig) -> str:
    fields = (config.host, config.port, config.dbname, config.user, config.password)
    return ":".join(_escape_pgpass_field(field) for field in fields)


class FileSystemService:
    """Encapsulates temporary file, credential file and directory side effects."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    def set_permissions(self, path: str, mode: int):
        if sys.platform == "win32":
            return

        try:
            os.chmod(path, mode)
        except Exception as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    @contextmanager
    def credential_file(self, config: ConnectionConfig) -> Iterator[str]:
        """Yield the path of an owner-only password file for ``config``.

        The file lives in its own private temporary directory, which is
        removed on exit whether or not the block raised.
        """
        credential_dir = tempfile.mkdtemp(prefix="pgephemeral-pass-")
        try:
            self.set_permissions(credential_dir, CREDENTIAL_DIR_MODE)
            path = os.path.join(credential_dir, "pgpass")
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, CREDENTIAL_FILE_MODE)
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as file_obj:
                file_obj.write(format_pgpass_line(config))
                file_obj.write("\n")
            self.set_permissions(path, CREDENTIAL_FILE_MODE)
            self.logger.debug("Wrote credential file for %s at %s", config.dbname, path)
            yield path
        finally:
            self.cleanup_dir(credential_dir)

    def create_dump_file(self, dbname: str) -> str:
        fd, path = tempfile.mkstemp(prefix=f"pgephemeral-{dbname}-", suffix=".sql")
        os.close(fd)
        self.set_permissions(path, CREDENTIAL_FILE_MODE)
        return path

    def remove_file(self, path: str):
        if path and os.path.exists(path):
            try:
                os.remove(path)
                self.logger.debug("Removed file: %s", path)
            except OSError as exc:
                message = f"Warning: Could not remove {path}: {exc}"
                self.console.print(f"[yellow]{message}[/yellow]")
                self.logger.warning(message)

    def cleanup_dir(self, path: str):
        if os.path.exists(path):
            try:
                shutil.rmtree(path)
                self.logger.debug("Removed directory: %s", path)
            except Exception as exc:
                message = f"Warning: Could not remove {path}: {exc}"
                self.console.print(f"[yellow]{message}[/yellow]")
                self.logger.warning(message)
