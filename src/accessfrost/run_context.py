"""
State shared by every component during a single export or import run.

Everything cached here is loaded lazily, the first time it is needed, and is
never invalidated while the run lasts. The only exception is the set of
existing roles, which the appliers keep up to date as they create, rename and
drop roles.
"""

from typing import Dict, List, Optional, Set, Tuple

from accessfrost.config import Settings
from accessfrost.logger import GLOBAL_LOGGER as logger
from accessfrost.naming import (
    SNOWFLAKE_NAMING_CONSTRAINTS,
    NamingConstraints,
    UniqueNameGenerator,
)
from accessfrost.repository import (
    DbEntity,
    FunctionEntity,
    Repository,
    SchemaEntity,
    TableEntity,
)
from accessfrost.role_scope import RoleKind, RoleScope

NamespaceKey = Tuple[RoleKind, Optional[str]]


class RunContext:
    def __init__(
        self,
        repository: Repository,
        settings: Optional[Settings] = None,
        constraints: NamingConstraints = SNOWFLAKE_NAMING_CONSTRAINTS,
    ) -> None:
        self.repository = repository
        self.settings = settings or Settings()
        self.constraints = constraints

        self._generators: Dict[NamespaceKey, UniqueNameGenerator] = {}
        self._existing_roles: Dict[NamespaceKey, Set[str]] = {}
        self._created_roles: Set[RoleScope] = set()
        self._renamed_from: Dict[RoleScope, RoleScope] = {}

        self._databases: Optional[List[DbEntity]] = None
        self._inbound_shares: Optional[List[DbEntity]] = None
        self._warehouses: Optional[List[DbEntity]] = None
        self._integrations: Optional[List[DbEntity]] = None
        self._schemas: Dict[str, List[SchemaEntity]] = {}
        self._tables: Dict[Tuple[str, str], List[TableEntity]] = {}
        self._functions: Dict[str, List[FunctionEntity]] = {}
        self._procedures: Dict[str, List[FunctionEntity]] = {}

    # Naming

    def name_generator(
        self, kind: RoleKind, namespace: Optional[str] = None
    ) -> UniqueNameGenerator:
        """One generator per namespace, shared by the whole run."""
        key = (kind, namespace if kind != RoleKind.ACCOUNT else None)
        if key not in self._generators:
            self._generators[key] = UniqueNameGenerator(self.constraints, key[1])
        return self._generators[key]

    # Existing roles

    def existing_roles(
        self, kind: RoleKind, namespace: Optional[str] = None
    ) -> Set[str]:
        key = (kind, namespace if kind != RoleKind.ACCOUNT else None)
        if key not in self._existing_roles:
            if kind == RoleKind.DATABASE:
                roles = self.repository.get_database_roles(namespace or "")
            elif kind == RoleKind.APPLICATION:
                roles = self.repository.get_application_roles(namespace or "")
            else:
                roles = self.repository.get_account_roles()

            self._existing_roles[key] = {role.name for role in roles}
            logger.debug(
                f"Found {len(roles)} existing {kind.value}s"
                + (f" in {namespace}" if namespace else "")
            )

        return self._existing_roles[key]

    def role_exists(self, role: RoleScope) -> bool:
        return role.name in self.existing_roles(role.kind, role.namespace)

    def role_created(self, role: RoleScope) -> None:
        self.existing_roles(role.kind, role.namespace).add(role.name)
        self._created_roles.add(role)

    def role_dropped(self, role: RoleScope) -> None:
        self.existing_roles(role.kind, role.namespace).discard(role.name)
        self._created_roles.discard(role)
        self._renamed_from.pop(role, None)

    def role_renamed(self, old: RoleScope, new: RoleScope) -> None:
        created = old in self._created_roles
        origin = self._renamed_from.get(old, old)

        self.role_dropped(old)
        self.existing_roles(new.kind, new.namespace).add(new.name)
        if created:
            self._created_roles.add(new)
        else:
            self._renamed_from[new] = origin

    def native_role(self, role: RoleScope) -> Optional[RoleScope]:
        """
        The native role the current grants of `role` can be read from.

        None when there is nothing to read: the role does not exist, or it was
        created during this run. In a dry run a renamed role still lives under
        its previous name.
        """
        if role in self._created_roles or not self.role_exists(role):
            return None

        if self.repository.dry_run:
            return self._renamed_from.get(role, role)

        return role

    # Data objects

    def databases(self) -> List[DbEntity]:
        """Standard databases, without the ones excluded in the settings."""
        if self._databases is None:
            excluded = {db.upper() for db in self.settings.excluded_databases}
            self._databases = [
                db
                for db in self.repository.get_databases()
                if db.name.upper() not in excluded
            ]
        return self._databases

    def inbound_shares(self) -> List[DbEntity]:
        if self._inbound_shares is None:
            self._inbound_shares = self.repository.get_inbound_shares()
        return self._inbound_shares

    def is_inbound_share(self, database: str) -> bool:
        return any(share.name == database for share in self.inbound_shares())

    def warehouses(self) -> List[DbEntity]:
        if self._warehouses is None:
            self._warehouses = self.repository.get_warehouses()
        return self._warehouses

    def integrations(self) -> List[DbEntity]:
        if self._integrations is None:
            self._integrations = self.repository.get_integrations()
        return self._integrations

    def schemas(self, database: str) -> List[SchemaEntity]:
        if database not in self._schemas:
            self._schemas[database] = self.repository.get_schemas_in_database(database)
        return self._schemas[database]

    def tables(self, database: str, schema: str) -> List[TableEntity]:
        key = (database, schema)
        if key not in self._tables:
            self._tables[key] = self.repository.get_tables_in_schema(database, schema)
        return self._tables[key]

    def functions(self, database: str, schema: str) -> List[FunctionEntity]:
        if database not in self._functions:
            self._functions[database] = self.repository.get_functions_in_database(
                database
            )
        return [f for f in self._functions[database] if f.schema == schema]

    def procedures(self, database: str, schema: str) -> List[FunctionEntity]:
        if database not in self._procedures:
            self._procedures[database] = self.repository.get_procedures_in_database(
                database
            )
        return [p for p in self._procedures[database] if p.schema == schema]
