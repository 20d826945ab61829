"""Subprocess execution service for pgephemeral."""

import os
import subprocess
from typing import IO, List, Mapping, Optional

from pgephemeral.errors import CommandError
from pgephemeral.errors_catalog import actionable_error


class CommandRunner:
    """Runs external commands synchronously with consistent error handling.

    Extra environment variables are layered over a copy of ``os.environ`` for
    the child only; the parent's environment is never modified.
    """

    def __init__(self, logger, subprocess_module=subprocess):
        self.logger = logger
        self.subprocess = subprocess_module

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        env: Optional[Mapping[str, str]] = None,
        stdout: Optional[IO] = None,
    ) -> subprocess.CompletedProcess:
        cmd_str = " ".join(cmd)
        self.logger.debug("Executing: %s", cmd_str)

        child_env = None
        if env:
            child_env = dict(os.environ)
            child_env.update(env)

        kwargs = {"text": True, "env": child_env}
        if stdout is not None:
            kwargs["stdout"] = stdout
            kwargs["stderr"] = subprocess.PIPE
        elif capture_output:
            kwargs["capture_output"] = True

        try:
            result = self.subprocess.run(cmd, **kwargs)
        except FileNotFoundError as exc:
            raise CommandError(actionable_error("tool_not_found", tool=cmd[0])) from exc
        except OSError as exc:
            raise CommandError(f"Failed to execute command: {cmd_str}. {exc}") from exc

        if capture_output and stdout is None and result.stdout:
            self.logger.debug("Command output: %s", result.stdout.strip())

        if result.returncode == 0:
            return result

        stderr = (result.stderr or "").strip()
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if stderr:
            message = f"{message}\n{stderr}"

        if check:
            raise CommandError(message, returncode=result.returncode)

        self.logger.debug(message)
        return result
