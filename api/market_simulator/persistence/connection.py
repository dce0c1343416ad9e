"""
DuckDB Connection Manager

Manages database connections, schema initialization and validation.
"""

import logging
from pathlib import Path

import duckdb

from .models import ALL_MODELS
from .schema_generator import generate_full_schema_ddl, validate_table_schema

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Manages DuckDB connection and schema.

    Responsibilities:
    - Create and manage the DuckDB connection
    - Initialize database schema from Pydantic models
    - Validate schema matches models
    - Provide context manager for clean resource management

    Usage:
        with DatabaseManager("market_data.db") as manager:
            manager.setup()
            # Use manager.conn for queries
    """

    def __init__(self, db_path: str | Path = "market_data.db"):
        """Initialize database manager.

        Args:
            db_path: Path to DuckDB database file, or ":memory:"
        """
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path)
        self.conn = duckdb.connect(str(self.db_path))

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get the database connection."""
        return self.conn

    def initialize_schema(self, force_recreate: bool = False) -> None:
        """Create tables and indexes from the persistence models.

        Uses CREATE TABLE IF NOT EXISTS, so safe to run multiple times.

        Args:
            force_recreate: If True, drop existing tables first
        """
        logger.info("Initializing database schema at %s", self.db_path)

        if force_recreate:
            self._drop_all_tables()

        # DuckDB has no executescript; run statements one by one
        ddl = generate_full_schema_ddl()
        for statement in (s.strip() for s in ddl.split(";")):
            if statement:
                self.conn.execute(statement)

    def is_initialized(self) -> bool:
        """Check whether the core tables exist."""
        try:
            self.conn.execute("SELECT 1 FROM pool_state LIMIT 1")
            return True
        except duckdb.Error:
            return False

    def validate_schema(self) -> tuple[bool, dict[str, list[str]]]:
        """Validate every table against its model.

        Returns:
            Tuple of (all_valid, mapping of table name to error messages)
        """
        problems: dict[str, list[str]] = {}
        for model in ALL_MODELS:
            is_valid, errors = validate_table_schema(self.conn, model)
            if not is_valid:
                table_name = model.model_config.get("table_name", "unknown")
                problems[table_name] = errors  # type: ignore[index]
                for error in errors:
                    logger.warning("Schema mismatch in %s: %s", table_name, error)

        return not problems, problems

    def setup(self) -> None:
        """Initialize then validate the schema.

        Raises:
            RuntimeError: If schema validation fails
        """
        self.initialize_schema()

        is_valid, problems = self.validate_schema()
        if not is_valid:
            raise RuntimeError(
                "Database schema validation failed for tables "
                f"{sorted(problems)}. Delete the database and reinitialize."
            )

        logger.info("Database setup complete")

    def _drop_all_tables(self) -> None:
        """Drop all tables managed by this system, in reverse order."""
        for model in reversed(ALL_MODELS):
            table_name = model.model_config.get("table_name")
            self.conn.execute(f"DROP TABLE IF EXISTS {table_name}")

    def close(self) -> None:
        """Close database connection."""
        self.conn.close()

    def __enter__(self) -> "DatabaseManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
