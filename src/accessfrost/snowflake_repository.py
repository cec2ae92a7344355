"""
`Repository` implementation issuing SQL against Snowflake.

Listing queries fail when they return as many rows as Snowflake is willing to
return, since a truncated listing would corrupt every diff computed from it.
Bulk membership changes are sent as multi-statement requests of at most
`MAX_STATEMENTS_PER_REQUEST` statements.

In dry-run mode nothing is changed: mutating statements are logged and kept
in `executed` so the caller can print them.
"""

from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from accessfrost.error import RepositoryError, RowLimitExceededError
from accessfrost.identifiers import join, quote, split_full_name, string_literal
from accessfrost.logger import GLOBAL_LOGGER as logger
from accessfrost.models import Tag
from accessfrost.repository import (
    DbEntity,
    DescribePolicyEntity,
    FunctionEntity,
    GrantOfRole,
    GrantToRole,
    MaskPolicyDefinition,
    PolicyEntity,
    PolicyReferenceEntity,
    Repository,
    RoleEntity,
    SchemaEntity,
    ShareEntity,
    TableEntity,
)
from accessfrost.role_scope import RoleKind, RoleScope
from accessfrost.snowflake_connector import SnowflakeConnector

ROW_LIMIT = 10000
MAX_STATEMENTS_PER_REQUEST = 200

ACCOUNT_ADMIN = "ACCOUNTADMIN"

ROLE_KEYWORDS = {
    RoleKind.ACCOUNT: "ROLE",
    RoleKind.DATABASE: "DATABASE ROLE",
    RoleKind.APPLICATION: "APPLICATION ROLE",
}


def role_keyword(role: RoleScope) -> str:
    return ROLE_KEYWORDS[role.kind]


def role_identifier(role: RoleScope) -> str:
    if role.namespace is None:
        return quote(role.name)
    return join(role.namespace, role.name)


class SnowflakeRepository(Repository):
    def __init__(
        self,
        connector: SnowflakeConnector,
        role: Optional[str] = None,
        dry_run: bool = False,
    ) -> None:
        self.connector = connector
        self.dry_run = dry_run
        self.executed: List[str] = []
        self._role = role.upper() if role else None

    @property
    def role(self) -> str:
        """The role accessfrost runs as. It is never changed by a sync."""
        if self._role is None:
            self._role = self.connector.get_current_role().upper()
        return self._role

    def is_protected(self, role: RoleScope) -> bool:
        return role.kind == RoleKind.ACCOUNT and role.name.upper() == self.role

    # Execution

    def _fetch(self, query: str, limit: bool = True) -> List[Dict[str, Any]]:
        try:
            rows = self.connector.fetch_all(query)
        except SQLAlchemyError as exc:
            raise RepositoryError(f"error while executing query {query}: {exc}")

        if limit and len(rows) >= ROW_LIMIT:
            raise RowLimitExceededError(query, ROW_LIMIT)

        return rows

    def _execute(self, *statements: str) -> None:
        """Run the statements in one request, in order."""
        if not statements:
            return

        if self.dry_run:
            for statement in statements:
                logger.info(f"[DRY RUN] {statement}")
                self.executed.append(statement)
            return

        try:
            if len(statements) == 1:
                self.connector.run_query(statements[0])
            else:
                self.connector.execute_statements(statements)
        except SQLAlchemyError as exc:
            raise RepositoryError(
                f"error while executing query {'; '.join(statements)}: {exc}"
            )

    def _execute_batched(self, statements: Sequence[str]) -> None:
        for start in range(0, len(statements), MAX_STATEMENTS_PER_REQUEST):
            self._execute(*statements[start : start + MAX_STATEMENTS_PER_REQUEST])

    # Roles

    def get_account_roles(self, prefix: str = "") -> List[RoleEntity]:
        query = "SHOW ROLES"
        if prefix:
            query += f" LIKE {string_literal(prefix + '%')}"

        return [
            self._role_entity(row)
            for row in self._fetch(query)
            if row["name"].upper() != self.role
        ]

    def get_database_roles(self, database: str) -> List[RoleEntity]:
        query = f"SHOW DATABASE ROLES IN DATABASE {quote(database)}"
        return [self._role_entity(row) for row in self._fetch(query)]

    def get_applications(self) -> List[DbEntity]:
        return self._db_entities("SHOW APPLICATIONS IN ACCOUNT")

    def get_application_roles(self, application: str) -> List[RoleEntity]:
        query = f"SHOW APPLICATION ROLES IN APPLICATION {quote(application)}"
        return [self._role_entity(row) for row in self._fetch(query)]

    @staticmethod
    def _role_entity(row: Dict[str, Any]) -> RoleEntity:
        return RoleEntity(
            name=row["name"],
            owner=row.get("owner") or "",
            comment=row.get("comment") or "",
        )

    def create_role(self, role: RoleScope) -> None:
        if self.is_protected(role):
            logger.warning(f"skipping mutation of protected role {role.name}")
            return

        if role.kind == RoleKind.APPLICATION:
            raise RepositoryError(
                f"application role {role.qualified_name} can not be created"
            )

        self._execute(
            f"CREATE {role_keyword(role)} IF NOT EXISTS {role_identifier(role)}"
        )

    def drop_role(self, role: RoleScope) -> None:
        if self.is_protected(role):
            logger.warning(f"skipping mutation of protected role {role.name}")
            return

        identifier = role_identifier(role)
        keyword = role_keyword(role)

        # Objects owned by the role are kept
        self._execute(
            f"GRANT OWNERSHIP ON {keyword} {identifier} TO ROLE {quote(self.role)}"
        )
        self._execute(f"DROP {keyword} {identifier}")

    def rename_role(self, old: RoleScope, new: RoleScope) -> None:
        if self.is_protected(old):
            logger.warning(f"skipping mutation of protected role {old.name}")
            return

        self._execute(
            f"ALTER {role_keyword(old)} IF EXISTS {role_identifier(old)} "
            f"RENAME TO {role_identifier(new)}"
        )

    def comment_role_if_exists(self, role: RoleScope, comment: str) -> None:
        if self.is_protected(role):
            logger.warning(f"skipping mutation of protected role {role.name}")
            return

        query = (
            f"COMMENT IF EXISTS ON {role_keyword(role)} {role_identifier(role)} "
            f"IS '{comment.replace(chr(39), '')}'"
        )
        try:
            self._execute(query)
        except RepositoryError as exc:
            logger.warning(
                f"unable to update comment on role {role.qualified_name}, possibly "
                f"because not owning it. Ignoring: {exc}"
            )

    def set_tag_on_role(self, role: RoleScope, tag_name: str, tag_value: str) -> None:
        parts = split_full_name(tag_name)
        if len(parts) != 3:
            raise ValueError(
                f"expected tagname {tag_name!r} to have 3 parts "
                "(database.schema.tagname)"
            )

        self._execute(
            f"ALTER {role_keyword(role)} {role_identifier(role)} SET TAG "
            f"{join(*parts)} = '{tag_value.replace(chr(39), '')}'"
        )

    # Grants

    def get_grants_to_role(self, role: RoleScope) -> List[GrantToRole]:
        query = f"SHOW GRANTS TO {role_keyword(role)} {role_identifier(role)}"
        return self._grants_to(query)

    def get_grants_of_role(self, role: RoleScope) -> List[GrantOfRole]:
        query = f"SHOW GRANTS OF {role_keyword(role)} {role_identifier(role)}"
        return [
            GrantOfRole(granted_to=row["granted_to"], grantee_name=row["grantee_name"])
            for row in self._fetch(query)
        ]

    def _grants_to(self, query: str) -> List[GrantToRole]:
        return [
            GrantToRole(
                privilege=row["privilege"],
                granted_on=row["granted_on"],
                name=row["name"],
            )
            for row in self._fetch(query)
        ]

    def execute_grant_on_role(self, permission: str, on: str, role: RoleScope) -> None:
        if self.is_protected(role):
            logger.warning(f"skipping mutation of protected role {role.name}")
            return

        self._execute(
            f"GRANT {permission} ON {on} TO {role_keyword(role)} "
            f"{role_identifier(role)}"
        )

    def execute_revoke_on_role(self, permission: str, on: str, role: RoleScope) -> None:
        if self.is_protected(role):
            logger.warning(f"skipping mutation of protected role {role.name}")
            return

        self._execute(
            f"REVOKE {permission} ON {on} FROM {role_keyword(role)} "
            f"{role_identifier(role)}"
        )

    def grant_users_to_role(self, role: RoleScope, users: Sequence[str]) -> None:
        if self.is_protected(role):
            logger.warning(f"skipping mutation of protected role {role.name}")
            return

        identifier = role_identifier(role)
        self._execute_batched(
            [f"GRANT ROLE {identifier} TO USER {quote(user)}" for user in users]
        )

    def revoke_users_from_role(self, role: RoleScope, users: Sequence[str]) -> None:
        if self.is_protected(role):
            logger.warning(f"skipping mutation of protected role {role.name}")
            return

        identifier = role_identifier(role)
        self._execute_batched(
            [f"REVOKE ROLE {identifier} FROM USER {quote(user)}" for user in users]
        )

    def grant_role_to_roles(
        self, role: RoleScope, grantees: Sequence[RoleScope]
    ) -> None:
        if self.is_protected(role):
            logger.warning(f"skipping mutation of protected role {role.name}")
            return

        keyword = role_keyword(role)
        identifier = role_identifier(role)

        statements = []
        for grantee in grantees:
            if grantee.kind != RoleKind.APPLICATION:
                # Roles referenced before they are created by their own
                # access provider
                statements.append(
                    f"CREATE {role_keyword(grantee)} IF NOT EXISTS "
                    f"{role_identifier(grantee)}"
                )
            statements.append(
                f"GRANT {keyword} {identifier} TO {role_keyword(grantee)} "
                f"{role_identifier(grantee)}"
            )

        self._execute_batched(statements)

    def revoke_role_from_roles(
        self, role: RoleScope, grantees: Sequence[RoleScope]
    ) -> None:
        if self.is_protected(role):
            logger.warning(f"skipping mutation of protected role {role.name}")
            return

        keyword = role_keyword(role)
        identifier = role_identifier(role)
        self._execute_batched(
            [
                f"REVOKE {keyword} {identifier} FROM {role_keyword(grantee)} "
                f"{role_identifier(grantee)}"
                for grantee in grantees
            ]
        )

    # Shares

    def get_outbound_shares(self) -> List[ShareEntity]:
        return [
            ShareEntity(
                name=row["name"],
                database_name=row.get("database_name") or "",
                owner=row.get("owner") or "",
                to=row.get("to") or "",
            )
            for row in self._fetch("SHOW SHARES")
            if (row.get("kind") or "").upper() == "OUTBOUND"
        ]

    def get_inbound_shares(self) -> List[DbEntity]:
        return [
            DbEntity(name=row["database_name"], kind="INBOUND")
            for row in self._fetch("SHOW SHARES")
            if (row.get("kind") or "").upper() == "INBOUND" and row.get("database_name")
        ]

    def get_grants_to_share(self, share: str) -> List[GrantToRole]:
        return self._grants_to(f"SHOW GRANTS TO SHARE {quote(share)}")

    def create_share(self, share: str) -> None:
        self._execute(f"CREATE SHARE IF NOT EXISTS {quote(share)}")

    def set_share_accounts(self, share: str, accounts: Sequence[str]) -> None:
        self._execute(f"ALTER SHARE {quote(share)} SET ACCOUNTS={','.join(accounts)}")

    def drop_share(self, share: str) -> None:
        self._execute(f"DROP SHARE {quote(share)}")

    def execute_grant_on_share(self, permission: str, on: str, share: str) -> None:
        self._execute(f"GRANT {permission} ON {on} TO SHARE {quote(share)}")

    def execute_revoke_on_share(self, permission: str, on: str, share: str) -> None:
        self._execute(f"REVOKE {permission} ON {on} FROM SHARE {quote(share)}")

    # Listing

    def _db_entities(self, query: str) -> List[DbEntity]:
        return [
            DbEntity(
                name=row["name"],
                kind=row.get("kind") or "",
                comment=row.get("comment") or "",
            )
            for row in self._fetch(query)
        ]

    def get_databases(self) -> List[DbEntity]:
        return [
            database
            for database in self._db_entities("SHOW DATABASES IN ACCOUNT")
            if database.kind.upper() in ("", "STANDARD")
        ]

    def get_warehouses(self) -> List[DbEntity]:
        return self._db_entities("SHOW WAREHOUSES")

    def get_integrations(self) -> List[DbEntity]:
        return self._db_entities("SHOW INTEGRATIONS")

    def get_schemas_in_database(self, database: str) -> List[SchemaEntity]:
        query = f"SELECT * FROM {quote(database)}.INFORMATION_SCHEMA.SCHEMATA"
        return [
            SchemaEntity(database=row["catalog_name"], name=row["schema_name"])
            for row in self._fetch(query)
        ]

    def get_tables_in_schema(self, database: str, schema: str) -> List[TableEntity]:
        query = (
            f"SELECT * FROM {quote(database)}.INFORMATION_SCHEMA.TABLES "
            f"WHERE TABLE_SCHEMA = {string_literal(schema)}"
        )
        return [self._table_entity(row) for row in self._fetch(query)]

    @staticmethod
    def _table_entity(row: Dict[str, Any]) -> TableEntity:
        return TableEntity(
            database=row["table_catalog"],
            schema=row["table_schema"],
            name=row["table_name"],
            table_type=row.get("table_type") or "BASE TABLE",
            is_iceberg=(row.get("is_iceberg") or "NO").upper() == "YES",
        )

    def get_functions_in_database(self, database: str) -> List[FunctionEntity]:
        query = f"SELECT * FROM {quote(database)}.INFORMATION_SCHEMA.FUNCTIONS"
        return [
            FunctionEntity(
                database=row["function_catalog"],
                schema=row["function_schema"],
                name=row["function_name"],
                argument_signature=row.get("argument_signature") or "()",
            )
            for row in self._fetch(query)
        ]

    def get_procedures_in_database(self, database: str) -> List[FunctionEntity]:
        query = f"SELECT * FROM {quote(database)}.INFORMATION_SCHEMA.PROCEDURES"
        return [
            FunctionEntity(
                database=row["procedure_catalog"],
                schema=row["procedure_schema"],
                name=row["procedure_name"],
                argument_signature=row.get("argument_signature") or "()",
            )
            for row in self._fetch(query)
        ]

    def get_column_types(self, database: str, columns: Sequence[str]) -> Dict[str, str]:
        if not columns:
            return {}

        literals = ", ".join(string_literal(column) for column in columns)
        query = (
            f"SELECT * FROM {quote(database)}.INFORMATION_SCHEMA.COLUMNS WHERE "
            "CONCAT_WS('.', TABLE_CATALOG, TABLE_SCHEMA, TABLE_NAME, COLUMN_NAME) "
            f"IN ({literals})"
        )

        column_types = {}
        for row in self._fetch(query):
            full_name = ".".join(
                [
                    row["table_catalog"],
                    row["table_schema"],
                    row["table_name"],
                    row["column_name"],
                ]
            )
            column_types[full_name] = row["data_type"]
            logger.debug(f"Column {full_name} has type {row['data_type']}")

        return column_types

    def _table_type(self, database: str, schema: str, table: str) -> str:
        query = (
            f"SELECT * FROM {quote(database)}.INFORMATION_SCHEMA.TABLES "
            f"WHERE TABLE_NAME = {string_literal(table)} "
            f"AND TABLE_SCHEMA = {string_literal(schema)}"
        )
        rows = self._fetch(query)
        if not rows:
            raise RepositoryError(f"table {database}.{schema}.{table} not found")

        return "VIEW" if "VIEW" in (rows[0].get("table_type") or "") else "TABLE"

    # Policies

    def get_policies(self, kind: str, like: Optional[str] = None) -> List[PolicyEntity]:
        query = f"SHOW {kind} POLICIES"
        if like:
            query += f" LIKE {string_literal(like.upper())}"
        query += " IN ACCOUNT"

        return [
            PolicyEntity(
                name=row["name"],
                database_name=row["database_name"],
                schema_name=row["schema_name"],
                kind=row.get("kind") or "",
                owner=row.get("owner") or "",
            )
            for row in self._fetch(query)
        ]

    def describe_policy(
        self, kind: str, database: str, schema: str, name: str
    ) -> List[DescribePolicyEntity]:
        query = f"DESCRIBE {kind} POLICY {join(database, schema, name)}"
        return [
            DescribePolicyEntity(name=row["name"], body=row["body"])
            for row in self._fetch(query)
        ]

    def get_policy_references(
        self, database: str, schema: str, name: str
    ) -> List[PolicyReferenceEntity]:
        query = (
            f"select * from table({quote(database)}.information_schema"
            f".policy_references(policy_name => '{join(database, schema, name)}'))"
        )
        return [
            PolicyReferenceEntity(
                policy_db=row["policy_db"],
                policy_schema=row["policy_schema"],
                policy_name=row["policy_name"],
                policy_kind=row["policy_kind"],
                ref_database_name=row["ref_database_name"],
                ref_schema_name=row["ref_schema_name"],
                ref_entity_name=row["ref_entity_name"],
                ref_entity_domain=row["ref_entity_domain"],
                ref_column_name=row.get("ref_column_name"),
                policy_status=row.get("policy_status") or "ACTIVE",
            )
            for row in self._fetch(query)
        ]

    def _grant_create_policy(
        self, policy_kind: str, database: str, schema: str
    ) -> None:
        if self.role != ACCOUNT_ADMIN:
            self._execute(
                f"GRANT CREATE {policy_kind} POLICY ON SCHEMA {join(database, schema)} "
                f"TO ROLE {quote(self.role)}"
            )

    def create_mask_policies(
        self, database: str, schema: str, definitions: Sequence[MaskPolicyDefinition]
    ) -> None:
        if not definitions:
            return

        self._grant_create_policy("MASKING", database, schema)

        statements = [definition.statement for definition in definitions]

        table_types: Dict[str, str] = {}
        for definition in definitions:
            for column in definition.columns:
                db, schema_name, table, column_name = column.split(".")
                table_name = join(db, schema_name, table)
                if table_name not in table_types:
                    table_types[table_name] = self._table_type(db, schema_name, table)

                statements.append(
                    f"ALTER {table_types[table_name]} {table_name} ALTER COLUMN "
                    f'"{column_name}" SET MASKING POLICY {definition.policy_name} FORCE'
                )

        self._execute(*statements)

    def drop_mask_policy(self, database: str, schema: str, name: str) -> None:
        policies = [
            policy
            for policy in self.get_policies("MASKING", like=f"{name}_%")
            if policy.database_name == database and policy.schema_name == schema
        ]
        logger.info(
            f"Found {len(policies)} policies for mask {database}.{schema}.{name}"
        )

        statements = []
        for policy in policies:
            for reference in self.get_policy_references(database, schema, policy.name):
                if not reference.ref_column_name:
                    continue
                statements.append(
                    f"ALTER TABLE "
                    f"{join(database, schema, reference.ref_entity_name)} "
                    f"ALTER COLUMN {quote(reference.ref_column_name)} "
                    "UNSET MASKING POLICY"
                )

        statements += [
            f"DROP MASKING POLICY {join(database, schema, policy.name)}"
            for policy in policies
        ]

        self._execute(*statements)

    def _row_access_policy(
        self, database: str, schema: str, table: str
    ) -> Optional[str]:
        query = (
            f"select POLICY_NAME from table({quote(database)}.information_schema"
            ".policy_references(REF_ENTITY_NAME => "
            f"'{join(database, schema, table)}', REF_ENTITY_DOMAIN => 'table')) "
            "WHERE POLICY_KIND = 'ROW_ACCESS_POLICY'"
        )
        rows = self._fetch(query)
        if not rows:
            return None

        return rows[0]["policy_name"]

    def update_filter(
        self,
        database: str,
        schema: str,
        table: str,
        filter_name: str,
        arguments: Sequence[str],
        expression: str,
    ) -> None:
        if not arguments:
            raise RepositoryError(
                f"row access policy {filter_name} on {table} needs at least one column"
            )

        columns = [f"{database}.{schema}.{table}.{argument}" for argument in arguments]
        column_types = self.get_column_types(database, columns)

        function_arguments = [
            f"{column.split('.')[3]} {column_types[column]}"
            for column in columns
            if column in column_types
        ]
        if len(function_arguments) != len(arguments):
            raise RepositoryError(
                f"number of function arguments ({len(function_arguments)}) does not "
                f"match number of argument names ({len(arguments)})"
            )

        existing = self._row_access_policy(database, schema, table)

        self._grant_create_policy("ROW ACCESS", database, schema)

        table_name = join(database, schema, table)
        policy_name = join(database, schema, filter_name)

        alter = f"ALTER TABLE {table_name} "
        if existing is not None:
            alter += f"DROP ROW ACCESS POLICY {join(database, schema, existing)}, "
        alter += f"ADD ROW ACCESS POLICY {policy_name} on ({', '.join(arguments)})"

        statements = [
            f"CREATE ROW ACCESS POLICY {policy_name} AS "
            f"({', '.join(function_arguments)}) returns boolean ->\n\t{expression}",
            alter,
        ]
        if existing is not None:
            statements.append(
                f"DROP ROW ACCESS POLICY IF EXISTS {join(database, schema, existing)}"
            )

        self._execute(*statements)

    def drop_filter(
        self, database: str, schema: str, table: str, filter_name: str
    ) -> None:
        existing = self._row_access_policy(database, schema, table)

        statements = []
        if existing is not None:
            statements.append(
                f"ALTER TABLE {join(database, schema, table)} DROP ROW ACCESS POLICY "
                f"{join(database, schema, existing)}"
            )
        statements.append(
            f"DROP ROW ACCESS POLICY IF EXISTS {join(database, schema, filter_name)}"
        )

        self._execute(*statements)

    # Tags

    def get_tags_by_domain(self, domain: str) -> Dict[str, List[Tag]]:
        query = (
            "select column_name, object_database, object_schema, object_name, "
            "domain, tag_name, tag_value from SNOWFLAKE.ACCOUNT_USAGE.tag_references "
            f"where object_deleted is null AND domain = {string_literal(domain)}"
        )

        tags: Dict[str, List[Tag]] = {}
        for row in self._fetch(query, limit=False):
            parts = [
                row.get(key)
                for key in (
                    "object_database",
                    "object_schema",
                    "object_name",
                    "column_name",
                )
            ]
            full_name = ".".join(part for part in parts if part)
            if not full_name:
                logger.warning(f"skipping tag {row} because cannot construct full name")
                continue

            tags.setdefault(full_name, []).append(
                Tag(key=row["tag_name"], value=row["tag_value"])
            )

        return tags

