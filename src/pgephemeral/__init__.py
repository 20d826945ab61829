"""
pgephemeral - Throwaway PostgreSQL databases for integration test runs
"""

__version__ = "0.1.0"

from .core import Lifecycle, Stage
from .errors import PgEphemeralError

__all__ = ["Lifecycle", "PgEphemeralError", "Stage"]
