"""
Expand the What items of an access provider into the grants its role (or
share) should hold.

Permissions that do not apply to an object are pushed down to its
descendants: a table permission given on a schema ends up on every table in
that schema. USAGE on the parent database and schema is added whenever a
descendant grant was produced.
"""

from typing import List, Optional

from accessfrost.error import AccessProviderError
from accessfrost.grants import ACCOUNT, Grant, GrantSet, function_full_name
from accessfrost.identifiers import SnowflakeObject, join, split_full_name
from accessfrost.logger import GLOBAL_LOGGER as logger
from accessfrost.models import AccessProvider
from accessfrost.object_kinds import (
    USAGE,
    USAGE_ON_DATABASE,
    USAGE_ON_SCHEMA,
    ObjectKind,
    applies_to,
    is_table_type,
    shared,
    table_type_from_information_schema,
)
from accessfrost.repository import TableEntity
from accessfrost.run_context import RunContext

DATABASE = ObjectKind.DATABASE.value
SCHEMA = ObjectKind.SCHEMA.value
TABLE = ObjectKind.TABLE.value
FUNCTION = ObjectKind.FUNCTION.value
PROCEDURE = ObjectKind.PROCEDURE.value
WAREHOUSE = ObjectKind.WAREHOUSE.value
INTEGRATION = ObjectKind.INTEGRATION.value
DATASOURCE = ObjectKind.DATASOURCE.value

INFORMATION_SCHEMA = "INFORMATION_SCHEMA"


class ExpectedGrantsBuilder:
    def __init__(self, context: RunContext) -> None:
        self.context = context

    def build(self, access_provider: AccessProvider) -> GrantSet:
        grants = GrantSet()

        for what in access_provider.what:
            permissions = what.permissions
            if not permissions:
                continue

            object_type = what.data_object.type.lower()
            full_name = what.data_object.full_name

            if is_table_type(object_type):
                self._table_grants(object_type, permissions, full_name, grants)
            elif object_type == SCHEMA:
                self._schema_grants(permissions, full_name, False, grants)
            elif object_type == shared(SCHEMA):
                self._schema_grants(permissions, full_name, True, grants)
            elif object_type == DATABASE:
                self._database_grants(permissions, full_name, False, grants)
            elif object_type == shared(DATABASE):
                self._database_grants(permissions, full_name, True, grants)
            elif object_type in (FUNCTION, PROCEDURE):
                self._function_grants(object_type, permissions, full_name, grants)
            elif object_type in (WAREHOUSE, INTEGRATION):
                self._simple_grants(object_type, permissions, full_name, grants)
            elif object_type == DATASOURCE:
                self._account_grants(permissions, grants)
            else:
                logger.warning(
                    f"Unsupported data object type {what.data_object.type!r} "
                    f"for {full_name!r}. Skipping"
                )

        return grants

    def _table_grants(
        self, object_type: str, permissions: List[str], full_name: str, grants: GrantSet
    ) -> None:
        sf_object = SnowflakeObject.parse(full_name)
        if sf_object.table is None or sf_object.column is not None:
            raise AccessProviderError(
                f"expected fullName {full_name!r} to have 3 parts "
                "(database.schema.view)"
            )

        # Iceberg tables are granted on as regular tables
        grant_type = object_type
        if object_type == ObjectKind.ICEBERG_TABLE.value:
            grant_type = TABLE

        added = 0
        for permission in permissions:
            if applies_to(permission, object_type):
                grants.add(Grant(permission, grant_type, sf_object.full_name()))
                added += 1
            else:
                logger.warning(
                    f"Permission {permission!r} does not apply to type "
                    f"{object_type.upper()}"
                )

        if added:
            self._add_usage(grants, sf_object.database, sf_object.schema)

    def _schema_grants(
        self, permissions: List[str], full_name: str, is_shared: bool, grants: GrantSet
    ) -> None:
        parts = split_full_name(full_name)
        if len(parts) != 2:
            raise AccessProviderError(
                f"expected fullName {full_name!r} to have 2 parts (database.schema)"
            )
        database, schema = parts

        match_found = False
        for permission in permissions:
            if self._schema_permission(database, schema, permission, is_shared, grants):
                match_found = True
            else:
                logger.info(
                    f"Permission {permission!r} does not apply to type SCHEMA or any "
                    "of its descendants. Skipping"
                )

        if match_found and not is_shared:
            self._add_usage(grants, database, schema)

    def _database_grants(
        self, permissions: List[str], database: str, is_shared: bool, grants: GrantSet
    ) -> None:
        match_found = False
        for permission in permissions:
            if self._database_permission(database, permission, is_shared, grants):
                match_found = True
            else:
                logger.info(
                    f"Permission {permission!r} does not apply to type DATABASE or "
                    "any of its descendants. Skipping"
                )

        if match_found and not is_shared:
            self._add_usage(grants, database)

    def _function_grants(
        self, object_type: str, permissions: List[str], full_name: str, grants: GrantSet
    ) -> None:
        added = 0
        for permission in permissions:
            if applies_to(permission, object_type):
                # The full name of a function already carries its signature
                grants.add(Grant(permission, object_type, full_name))
                added += 1
            else:
                logger.warning(
                    f"Permission {permission!r} does not apply to type "
                    f"{object_type.upper()}. Skipping"
                )

        parts = full_name.split(".")
        if added and len(parts) >= 3:
            self._add_usage(grants, parts[0], parts[1])

    def _simple_grants(
        self, object_type: str, permissions: List[str], full_name: str, grants: GrantSet
    ) -> None:
        for permission in permissions:
            if applies_to(permission, object_type):
                grants.add(Grant(permission, object_type, join(full_name)))
            else:
                logger.warning(
                    f"Permission {permission!r} does not apply to type "
                    f"{object_type.upper()}. Skipping"
                )

    def _account_grants(self, permissions: List[str], grants: GrantSet) -> None:
        for permission in permissions:
            if applies_to(permission, DATASOURCE):
                grants.add(Grant(permission, ACCOUNT, ""))
                continue

            match_found = False

            if applies_to(permission, WAREHOUSE):
                for warehouse in self.context.warehouses():
                    grants.add(Grant(permission, WAREHOUSE, join(warehouse.name)))
                    match_found = True

            if applies_to(permission, INTEGRATION):
                for integration in self.context.integrations():
                    grants.add(Grant(permission, INTEGRATION, join(integration.name)))
                    match_found = True

            databases = [(db.name, False) for db in self.context.databases()]
            databases += [(db.name, True) for db in self.context.inbound_shares()]

            for database, is_shared in databases:
                if self._database_permission(database, permission, is_shared, grants):
                    match_found = True
                    if not is_shared:
                        self._add_usage(grants, database)

            if not match_found:
                logger.info(
                    f"Permission {permission!r} does not apply to type DATASOURCE or "
                    "any of its descendants. Skipping"
                )

    def _database_permission(
        self, database: str, permission: str, is_shared: bool, grants: GrantSet
    ) -> bool:
        db_type = shared(DATABASE) if is_shared else DATABASE

        if applies_to(permission, db_type):
            if permission.upper() == USAGE_ON_DATABASE.upper():
                permission = USAGE
            grants.add(Grant(permission, db_type, join(database)))
            return True

        match_found = False
        for schema in self.context.schemas(database):
            if schema.name in (INFORMATION_SCHEMA, ""):
                continue

            if self._schema_permission(
                database, schema.name, permission, is_shared, grants
            ):
                match_found = True
                if not is_shared:
                    grants.add(Grant(USAGE, SCHEMA, join(database, schema.name)))

        return match_found

    def _schema_permission(
        self,
        database: str,
        schema: str,
        permission: str,
        is_shared: bool,
        grants: GrantSet,
    ) -> bool:
        schema_type = shared(SCHEMA) if is_shared else SCHEMA

        if applies_to(permission, schema_type):
            if permission.upper() == USAGE_ON_SCHEMA.upper():
                permission = USAGE
            grants.add(Grant(permission, schema_type, join(database, schema)))
            return True

        match_found = False

        for table in self.context.tables(database, schema):
            if self._table_permission(table, permission, is_shared, grants):
                match_found = True

        for kind, entities in (
            (FUNCTION, self.context.functions(database, schema)),
            (PROCEDURE, self.context.procedures(database, schema)),
        ):
            if not applies_to(permission, kind):
                continue

            for entity in entities:
                name = function_full_name(
                    database, schema, entity.name, entity.argument_signature
                )
                grants.add(Grant(permission, kind, name))
                match_found = True

        return match_found

    def _table_permission(
        self, table: TableEntity, permission: str, is_shared: bool, grants: GrantSet
    ) -> bool:
        object_type = table_type_from_information_schema(
            table.table_type, table.is_iceberg
        )
        if is_shared:
            object_type = shared(object_type)

        if not applies_to(permission, object_type):
            return False

        if object_type == ObjectKind.ICEBERG_TABLE.value:
            object_type = TABLE

        name = join(table.database, table.schema, table.name)
        grants.add(Grant(permission, object_type, name))
        return True

    @staticmethod
    def _add_usage(
        grants: GrantSet, database: str, schema: Optional[str] = None
    ) -> None:
        grants.add(Grant(USAGE, DATABASE, join(database)))
        if schema is not None:
            grants.add(Grant(USAGE, SCHEMA, join(database, schema)))
