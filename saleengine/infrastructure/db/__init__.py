from .config import (
    CONFIG_ENV_VAR,
    DEFAULT_DB_TIMEOUT,
    DatabaseConfig,
    get_database_config,
    load_config,
    resolve_config_path,
)
from .connection import (
    DatabaseError,
    apply_pragmas,
    get_connection,
    iso_utcnow,
    to_iso,
    transaction,
    utcnow,
)
from .schema import SchemaMigrator, ensure_schema

__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULT_DB_TIMEOUT",
    "DatabaseConfig",
    "DatabaseError",
    "SchemaMigrator",
    "apply_pragmas",
    "ensure_schema",
    "get_connection",
    "get_database_config",
    "iso_utcnow",
    "load_config",
    "resolve_config_path",
    "to_iso",
    "transaction",
    "utcnow",
]
