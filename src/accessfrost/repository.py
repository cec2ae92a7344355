"""
The capabilities the reconciliation engine needs from a warehouse.

Reconciliation code only ever talks to a `Repository`. The Snowflake adapter
lives in `accessfrost.snowflake_repository`; tests use an in-memory one.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, NamedTuple, Optional, Sequence

from accessfrost.models import Tag
from accessfrost.role_scope import RoleScope


class RoleEntity(NamedTuple):
    name: str
    owner: str = ""
    comment: str = ""


class GrantToRole(NamedTuple):
    privilege: str
    granted_on: str
    name: str


class GrantOfRole(NamedTuple):
    granted_to: str
    grantee_name: str


class DbEntity(NamedTuple):
    name: str
    kind: str = ""
    comment: str = ""


class ShareEntity(NamedTuple):
    name: str
    database_name: str = ""
    owner: str = ""
    to: str = ""


class SchemaEntity(NamedTuple):
    database: str
    name: str


class TableEntity(NamedTuple):
    database: str
    schema: str
    name: str
    table_type: str = "BASE TABLE"
    is_iceberg: bool = False


class FunctionEntity(NamedTuple):
    database: str
    schema: str
    name: str
    argument_signature: str = "()"


class PolicyEntity(NamedTuple):
    name: str
    database_name: str
    schema_name: str
    kind: str
    owner: str = ""


class DescribePolicyEntity(NamedTuple):
    name: str
    body: str


class PolicyReferenceEntity(NamedTuple):
    policy_db: str
    policy_schema: str
    policy_name: str
    policy_kind: str
    ref_database_name: str
    ref_schema_name: str
    ref_entity_name: str
    ref_entity_domain: str
    ref_column_name: Optional[str] = None
    policy_status: str = "ACTIVE"


class MaskPolicyDefinition(NamedTuple):
    """A masking policy statement and the columns it has to be set on."""

    policy_name: str
    statement: str
    columns: List[str]


class Repository(ABC):
    # Mutations are only recorded, the warehouse is left untouched
    dry_run = False

    # Roles

    @abstractmethod
    def get_account_roles(self, prefix: str = "") -> List[RoleEntity]:
        pass

    @abstractmethod
    def get_database_roles(self, database: str) -> List[RoleEntity]:
        pass

    @abstractmethod
    def get_applications(self) -> List[DbEntity]:
        pass

    @abstractmethod
    def get_application_roles(self, application: str) -> List[RoleEntity]:
        pass

    @abstractmethod
    def create_role(self, role: RoleScope) -> None:
        pass

    @abstractmethod
    def drop_role(self, role: RoleScope) -> None:
        pass

    @abstractmethod
    def rename_role(self, old: RoleScope, new: RoleScope) -> None:
        pass

    @abstractmethod
    def comment_role_if_exists(self, role: RoleScope, comment: str) -> None:
        pass

    @abstractmethod
    def set_tag_on_role(self, role: RoleScope, tag_name: str, tag_value: str) -> None:
        pass

    # Grants

    @abstractmethod
    def get_grants_to_role(self, role: RoleScope) -> List[GrantToRole]:
        pass

    @abstractmethod
    def get_grants_of_role(self, role: RoleScope) -> List[GrantOfRole]:
        pass

    @abstractmethod
    def execute_grant_on_role(self, permission: str, on: str, role: RoleScope) -> None:
        pass

    @abstractmethod
    def execute_revoke_on_role(self, permission: str, on: str, role: RoleScope) -> None:
        pass

    @abstractmethod
    def grant_users_to_role(self, role: RoleScope, users: Sequence[str]) -> None:
        pass

    @abstractmethod
    def revoke_users_from_role(self, role: RoleScope, users: Sequence[str]) -> None:
        pass

    @abstractmethod
    def grant_role_to_roles(
        self, role: RoleScope, grantees: Sequence[RoleScope]
    ) -> None:
        """Make `role` part of every role in `grantees`."""

    @abstractmethod
    def revoke_role_from_roles(
        self, role: RoleScope, grantees: Sequence[RoleScope]
    ) -> None:
        pass

    # Shares

    @abstractmethod
    def get_outbound_shares(self) -> List[ShareEntity]:
        pass

    @abstractmethod
    def get_inbound_shares(self) -> List[DbEntity]:
        pass

    @abstractmethod
    def get_grants_to_share(self, share: str) -> List[GrantToRole]:
        pass

    @abstractmethod
    def create_share(self, share: str) -> None:
        pass

    @abstractmethod
    def set_share_accounts(self, share: str, accounts: Sequence[str]) -> None:
        pass

    @abstractmethod
    def drop_share(self, share: str) -> None:
        pass

    @abstractmethod
    def execute_grant_on_share(self, permission: str, on: str, share: str) -> None:
        pass

    @abstractmethod
    def execute_revoke_on_share(self, permission: str, on: str, share: str) -> None:
        pass

    # Listing

    @abstractmethod
    def get_databases(self) -> List[DbEntity]:
        pass

    @abstractmethod
    def get_warehouses(self) -> List[DbEntity]:
        pass

    @abstractmethod
    def get_integrations(self) -> List[DbEntity]:
        pass

    @abstractmethod
    def get_schemas_in_database(self, database: str) -> List[SchemaEntity]:
        pass

    @abstractmethod
    def get_tables_in_schema(self, database: str, schema: str) -> List[TableEntity]:
        pass

    @abstractmethod
    def get_functions_in_database(self, database: str) -> List[FunctionEntity]:
        pass

    @abstractmethod
    def get_procedures_in_database(self, database: str) -> List[FunctionEntity]:
        pass

    @abstractmethod
    def get_column_types(self, database: str, columns: Sequence[str]) -> Dict[str, str]:
        """Map each `db.schema.table.column` full name to its data type."""

    # Policies

    @abstractmethod
    def get_policies(self, kind: str, like: Optional[str] = None) -> List[PolicyEntity]:
        pass

    @abstractmethod
    def describe_policy(
        self, kind: str, database: str, schema: str, name: str
    ) -> List[DescribePolicyEntity]:
        pass

    @abstractmethod
    def get_policy_references(
        self, database: str, schema: str, name: str
    ) -> List[PolicyReferenceEntity]:
        pass

    @abstractmethod
    def create_mask_policies(
        self, database: str, schema: str, definitions: Sequence[MaskPolicyDefinition]
    ) -> None:
        pass

    @abstractmethod
    def drop_mask_policy(self, database: str, schema: str, name: str) -> None:
        """Unset and drop every masking policy named `<name>_*`."""

    @abstractmethod
    def update_filter(
        self,
        database: str,
        schema: str,
        table: str,
        filter_name: str,
        arguments: Sequence[str],
        expression: str,
    ) -> None:
        pass

    @abstractmethod
    def drop_filter(
        self, database: str, schema: str, table: str, filter_name: str
    ) -> None:
        pass

    # Tags

    @abstractmethod
    def get_tags_by_domain(self, domain: str) -> Dict[str, List[Tag]]:
        pass
