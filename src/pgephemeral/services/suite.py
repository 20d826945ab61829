"""Test suite command callback."""

from typing import Dict, List

from pgephemeral.models import EphemeralDatabase


class CommandSuite:
    """Runs a test command against a ready ephemeral database.

    The command inherits the terminal and sees the libpq environment
    variables for the ephemeral database. Its password travels through a
    credential file that is removed once the command exits.
    """

    def __init__(self, command: List[str], command_runner, filesystem_service):
        self.command = list(command)
        self.command_runner = command_runner
        self.filesystem_service = filesystem_service

    @staticmethod
    def build_env(ephemeral: EphemeralDatabase, passfile: str) -> Dict[str, str]:
        config = ephemeral.config
        return {
            "PGHOST": config.host,
            "PGPORT": str(config.port),
            "PGUSER": config.user,
            "PGDATABASE": ephemeral.name,
            "PGSSLMODE": config.sslmode,
            "PGPASSFILE": passfile,
            "PGEPHEMERAL_DATABASE": ephemeral.name,
        }

    def __call__(self, ephemeral: EphemeralDatabase) -> int:
        with self.filesystem_service.credential_file(ephemeral.config) as passfile:
            result = self.command_runner.run(
                self.command,
                check=False,
                env=self.build_env(ephemeral, passfile),
            )
        return result.returncode
