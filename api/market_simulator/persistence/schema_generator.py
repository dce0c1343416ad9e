"""
DDL Generation from Pydantic Models

Generates CREATE TABLE and CREATE INDEX statements from the persistence
models so the database schema never drifts from the model definitions.
"""

import inspect
from datetime import datetime
from enum import Enum
from typing import Any, get_args, get_origin

from pydantic import BaseModel

# ============================================================================
# Type Mapping
# ============================================================================

PYTHON_TO_SQL_TYPE_MAP = {
    str: "VARCHAR",
    int: "BIGINT",
    float: "DOUBLE",
    bool: "BOOLEAN",
    datetime: "TIMESTAMP",
}


def python_type_to_sql_type(py_type: Any) -> str:
    """Convert a Python type annotation to a SQL type.

    Examples:
        >>> python_type_to_sql_type(float)
        'DOUBLE'
        >>> python_type_to_sql_type(datetime | None)
        'TIMESTAMP'
    """
    if get_origin(py_type) is not None:
        for arg in get_args(py_type):
            if arg is not type(None):
                py_type = arg
                break

    if inspect.isclass(py_type) and issubclass(py_type, Enum):
        return "VARCHAR"

    return PYTHON_TO_SQL_TYPE_MAP.get(py_type, "VARCHAR")


# ============================================================================
# DDL Generation
# ============================================================================


def generate_create_table_ddl(model: type[BaseModel]) -> str:
    """Generate CREATE TABLE DDL from a persistence model.

    Raises:
        ValueError: If model is missing model_config['table_name']

    Examples:
        >>> from market_simulator.persistence.models import PoolStateRecord
        >>> "CREATE TABLE IF NOT EXISTS pool_state" in generate_create_table_ddl(PoolStateRecord)
        True
    """
    config = model.model_config
    if "table_name" not in config:
        raise ValueError(f"Model {model.__name__} missing model_config['table_name']")

    table_name = config["table_name"]  # type: ignore[typeddict-item]
    primary_key = config.get("primary_key", [])

    columns = []
    for field_name, field_info in model.model_fields.items():
        py_type = field_info.annotation
        sql_type = python_type_to_sql_type(py_type)
        null_constraint = "" if _is_field_optional(py_type, field_info) else " NOT NULL"
        columns.append(f"    {field_name} {sql_type}{null_constraint}")

    if primary_key:
        columns.append(f"    PRIMARY KEY ({', '.join(primary_key)})")

    ddl = f"CREATE TABLE IF NOT EXISTS {table_name} (\n"
    ddl += ",\n".join(columns)
    ddl += "\n);"
    return ddl


def generate_create_indexes_ddl(model: type[BaseModel]) -> list[str]:
    """Generate CREATE INDEX statements from model_config['indexes']."""
    config = model.model_config
    indexes = config.get("indexes") or []
    table_name = config.get("table_name", "unknown")

    return [
        f"CREATE INDEX IF NOT EXISTS {index_name} ON {table_name} ({', '.join(columns)});"
        for index_name, columns in indexes
    ]


def generate_full_schema_ddl() -> str:
    """Generate complete schema DDL for all persistence models."""
    from .models import ALL_MODELS

    ddl_parts = []
    for model in ALL_MODELS:
        ddl_parts.append(generate_create_table_ddl(model))
        ddl_parts.extend(generate_create_indexes_ddl(model))

    return "\n\n".join(ddl_parts)


# ============================================================================
# Helper Functions
# ============================================================================


def _is_field_optional(py_type: Any, field_info: Any) -> bool:
    """Check if a field is nullable (annotation includes None or default is None)."""
    if type(None) in get_args(py_type):
        return True

    return field_info.default is None


# ============================================================================
# Schema Validation
# ============================================================================


def validate_table_schema(conn: Any, model: type[BaseModel]) -> tuple[bool, list[str]]:
    """Validate that a database table matches its persistence model.

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    config = model.model_config
    if "table_name" not in config:
        return False, [f"Model {model.__name__} missing model_config['table_name']"]

    table_name = config["table_name"]  # type: ignore[typeddict-item]
    errors = []

    try:
        # DESCRIBE returns: column_name, column_type, null, key, default, extra
        result = conn.execute(f"DESCRIBE {table_name}").fetchall()
        db_columns = {row[0]: row[1] for row in result}
    except Exception as e:
        return False, [f"Table {table_name} does not exist: {e}"]

    model_fields = set(model.model_fields.keys())
    db_fields = set(db_columns.keys())

    for col in sorted(model_fields - db_fields):
        errors.append(f"Column '{col}' missing from table {table_name}")

    extra_columns = db_fields - model_fields
    if extra_columns:
        errors.append(f"Unexpected columns in {table_name}: {sorted(extra_columns)}")

    for field_name, field_info in model.model_fields.items():
        if field_name not in db_columns:
            continue
        expected = python_type_to_sql_type(field_info.annotation)
        actual = db_columns[field_name]
        if expected == "TIMESTAMP" and actual.startswith("TIMESTAMP"):
            continue
        if actual != expected:
            errors.append(f"Column '{field_name}' in {table_name} is {actual}, expected {expected}")

    return len(errors) == 0, errors
