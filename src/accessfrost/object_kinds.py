"""
Data object kinds and the permissions that are valid on each of them.

The mapping is checked once when the module is imported: every kind must have
an entry, and permission tokens are stored upper-cased.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional

from accessfrost.logger import GLOBAL_LOGGER as logger

USAGE = "USAGE"
USAGE_ON_DATABASE = "USAGE on DATABASE"
USAGE_ON_SCHEMA = "USAGE on SCHEMA"
SHARED_PREFIX = "shared-"

# Object type of grants on the account itself
ACCOUNT = "account"


class ObjectKind(str, Enum):
    DATASOURCE = "datasource"
    WAREHOUSE = "warehouse"
    INTEGRATION = "integration"
    DATABASE = "database"
    SCHEMA = "schema"
    TABLE = "table"
    ICEBERG_TABLE = "iceberg-table"
    EXTERNAL_TABLE = "external-table"
    VIEW = "view"
    MATERIALIZED_VIEW = "materialized-view"
    FUNCTION = "function"
    PROCEDURE = "procedure"
    COLUMN = "column"
    SHARED_DATABASE = "shared-database"
    SHARED_SCHEMA = "shared-schema"
    SHARED_TABLE = "shared-table"
    SHARED_VIEW = "shared-view"
    SHARED_COLUMN = "shared-column"

    @classmethod
    def lookup(cls, value: str) -> Optional["ObjectKind"]:
        try:
            return cls(value.lower())
        except ValueError:
            return None


TABLE_KINDS = frozenset(
    {
        ObjectKind.TABLE,
        ObjectKind.VIEW,
        ObjectKind.MATERIALIZED_VIEW,
        ObjectKind.EXTERNAL_TABLE,
        ObjectKind.ICEBERG_TABLE,
    }
)

_TABLE_PERMISSIONS = (
    "SELECT",
    "INSERT",
    "UPDATE",
    "TRUNCATE",
    "DELETE",
    "REFERENCES",
    "OWNERSHIP",
)

_PERMISSIONS = {
    ObjectKind.DATASOURCE: (
        "APPLY MASKING POLICY",
        "APPLY ROW ACCESS POLICY",
        "APPLY SESSION POLICY",
        "APPLY TAG",
        "ATTACH POLICY",
        "CREATE ACCOUNT",
        "CREATE ROLE",
        "CREATE USER",
        "MANAGE GRANTS",
        "CREATE DATA EXCHANGE LISTING",
        "CREATE INTEGRATION",
        "CREATE NETWORK POLICY",
        "CREATE SHARE",
        "CREATE WAREHOUSE",
        "EXECUTE MANAGED TASK",
        "EXECUTE TASK",
        "IMPORT SHARE",
        "MONITOR EXECUTION",
        "MONITOR USAGE",
        "OVERRIDE SHARE RESTRICTIONS",
    ),
    ObjectKind.WAREHOUSE: ("MODIFY", "MONITOR", "OPERATE", USAGE),
    ObjectKind.INTEGRATION: (USAGE, "USE_ANY_ROLE"),
    ObjectKind.DATABASE: (
        "CREATE SCHEMA",
        USAGE_ON_DATABASE,
        "MODIFY",
        "MONITOR",
        "OWNERSHIP",
    ),
    ObjectKind.SCHEMA: (
        "MODIFY",
        "MONITOR",
        USAGE_ON_SCHEMA,
        "CREATE TABLE",
        "CREATE EXTERNAL TABLE",
        "CREATE VIEW",
        "CREATE MATERIALIZED VIEW",
        "CREATE MASKING POLICY",
        "CREATE ROW ACCESS POLICY",
        "CREATE SESSION POLICY",
        "CREATE STAGE",
        "CREATE FILE FORMAT",
        "CREATE SEQUENCE",
        "CREATE FUNCTION",
        "CREATE PIPE",
        "CREATE STREAM",
        "CREATE TAG",
        "CREATE TASK",
        "CREATE PROCEDURE",
        "ADD SEARCH OPTIMIZATION",
        "OWNERSHIP",
    ),
    ObjectKind.TABLE: _TABLE_PERMISSIONS,
    ObjectKind.ICEBERG_TABLE: _TABLE_PERMISSIONS + ("APPLYBUDGET",),
    ObjectKind.EXTERNAL_TABLE: ("SELECT", "OWNERSHIP", "REFERENCES"),
    ObjectKind.VIEW: ("SELECT", "REFERENCES", "OWNERSHIP"),
    ObjectKind.MATERIALIZED_VIEW: ("SELECT", "REFERENCES", "OWNERSHIP"),
    ObjectKind.FUNCTION: (USAGE,),
    ObjectKind.PROCEDURE: (USAGE,),
    ObjectKind.COLUMN: (),
    ObjectKind.SHARED_DATABASE: ("IMPORTED PRIVILEGES", USAGE_ON_DATABASE),
    ObjectKind.SHARED_SCHEMA: (USAGE_ON_SCHEMA,),
    ObjectKind.SHARED_TABLE: ("SELECT",),
    ObjectKind.SHARED_VIEW: ("SELECT",),
    ObjectKind.SHARED_COLUMN: (),
}


def _build_permission_map() -> Dict[str, FrozenSet[str]]:
    missing = [kind.value for kind in ObjectKind if kind not in _PERMISSIONS]
    if missing:
        raise RuntimeError(f"No permission metadata for object kinds: {missing}")

    return {
        kind.value: frozenset(permission.upper() for permission in permissions)
        for kind, permissions in _PERMISSIONS.items()
    }


PERMISSIONS_BY_KIND = _build_permission_map()


def permissions_for(object_type: str) -> FrozenSet[str]:
    return PERMISSIONS_BY_KIND.get(object_type.lower(), frozenset())


def applies_to(permission: str, object_type: str) -> bool:
    """Check if a permission token is valid on the given object type."""
    return permission.upper() in permissions_for(object_type)


def is_table_type(object_type: str) -> bool:
    return ObjectKind.lookup(object_type) in TABLE_KINDS


def is_shared_type(object_type: str) -> bool:
    return object_type.lower().startswith(SHARED_PREFIX)


def shared(object_type: str) -> str:
    return f"{SHARED_PREFIX}{object_type}"


def verify_grant(permission: str, on_type: str) -> bool:
    """
    Check a grant before it is sent to the warehouse.

    USAGE on databases and schemas is always accepted since those grants are
    synthesized for every descendant grant.
    """
    # Account grants carry the permissions of the datasource
    if on_type.lower() == ACCOUNT:
        on_type = ObjectKind.DATASOURCE.value

    if permission.upper() == USAGE and on_type.lower() in (
        ObjectKind.DATABASE.value,
        ObjectKind.SCHEMA.value,
    ):
        return True

    if applies_to(permission, on_type):
        return True

    logger.warning(
        f"Unknown permission {permission!r} for entity type {on_type}. Skipping."
    )
    return False


TABLE_TYPE_FROM_INFORMATION_SCHEMA = {
    "BASE TABLE": ObjectKind.TABLE.value,
    "VIEW": ObjectKind.VIEW.value,
    "MATERIALIZED VIEW": ObjectKind.MATERIALIZED_VIEW.value,
    "EXTERNAL TABLE": ObjectKind.EXTERNAL_TABLE.value,
}

TYPE_FROM_GRANT = {
    "TABLE": ObjectKind.TABLE.value,
    "VIEW": ObjectKind.VIEW.value,
    "DATABASE": ObjectKind.DATABASE.value,
    "SCHEMA": ObjectKind.SCHEMA.value,
    "WAREHOUSE": ObjectKind.WAREHOUSE.value,
    "MATERIALIZED_VIEW": ObjectKind.MATERIALIZED_VIEW.value,
    "EXTERNAL_TABLE": ObjectKind.EXTERNAL_TABLE.value,
    "ICEBERG_TABLE": ObjectKind.TABLE.value,
    "FUNCTION": ObjectKind.FUNCTION.value,
    "PROCEDURE": ObjectKind.PROCEDURE.value,
    "INTEGRATION": ObjectKind.INTEGRATION.value,
    "ACCOUNT": ObjectKind.DATASOURCE.value,
}

# Object types of SHOW GRANTS rows that are imported as What items
IMPORTED_GRANT_TYPES = frozenset(TYPE_FROM_GRANT)


def table_type_from_information_schema(
    table_type: str, is_iceberg: bool = False
) -> str:
    """Map the TABLE_TYPE column of INFORMATION_SCHEMA.TABLES to an object type."""
    object_type = TABLE_TYPE_FROM_INFORMATION_SCHEMA.get(table_type)
    if object_type is None:
        return table_type.lower()

    if object_type == ObjectKind.TABLE.value and is_iceberg:
        return ObjectKind.ICEBERG_TABLE.value

    return object_type


def type_from_grant(granted_on: str) -> str:
    """Map the granted_on column of SHOW GRANTS to an object type."""
    return TYPE_FROM_GRANT.get(granted_on, granted_on.lower())


def convert_function_argument_signature(signature: str) -> str:
    """
    Strip the argument names from a function signature.

    "(VAL VARCHAR, TYPE VARCHAR)" becomes "(VARCHAR, VARCHAR)".
    """
    signature = signature.strip()
    if not (signature.startswith("(") and signature.endswith(")")):
        return signature

    inner = signature[1:-1]
    if not inner.strip():
        return "()"

    args = [arg.strip().split(" ")[-1] for arg in inner.split(",")]
    return f"({', '.join(args)})"
