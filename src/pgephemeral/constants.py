"""Shared constants for pgephemeral."""

CREDENTIAL_FILE_MODE = 0o600
CREDENTIAL_DIR_MODE = 0o700

ADMIN_DATABASE = "template1"
DEFAULT_CONFIG_FILE = ".pgephemeral.yml"
DEFAULT_SSLMODE = "prefer"
DATABASE_ENCODING = "UTF8"

NAME_PREFIX_MAX_LENGTH = 40
NAME_HASH_LENGTH = 16
POSTGRES_IDENTIFIER_MAX_LENGTH = 63

PG_DUMP_BINARY = "pg_dump"
PSQL_BINARY = "psql"
