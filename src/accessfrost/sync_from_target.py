"""
Import: read the roles, shares and policies of the warehouse as access
providers.

Account roles are read first, then outbound shares, then database and
application roles when enabled, then masking and row access policies.
"""

from typing import Dict, List, Optional, Set, Tuple

from accessfrost.error import RepositoryError
from accessfrost.grants import function_name_from_grant
from accessfrost.logger import GLOBAL_LOGGER as logger
from accessfrost.models import (
    AccessProvider,
    Action,
    DataObjectReference,
    Tag,
    WhatItem,
    WhoItem,
)
from accessfrost.naming import OBJECT_PREFIX
from accessfrost.object_kinds import (
    IMPORTED_GRANT_TYPES,
    USAGE,
    ObjectKind,
    shared,
    type_from_grant,
)
from accessfrost.repository import GrantToRole, RoleEntity, ShareEntity
from accessfrost.role_scope import (
    AccountRole,
    ApplicationRole,
    DatabaseRole,
    RoleScope,
    clean_double_quotes,
    is_not_internalizable_role,
    parse_namespaced_role_name,
    share_external_id,
    to_external_id,
)
from accessfrost.run_context import RunContext

IMPORTED_PRIVILEGES = "IMPORTED PRIVILEGES"

MASKING = "MASKING"
ROW_ACCESS = "ROW ACCESS"


class AccessFromTargetSyncer:
    def __init__(self, context: RunContext) -> None:
        self.context = context
        self.repository = context.repository
        self.settings = context.settings

        self.excluded_roles = set(self.settings.excluded_roles)
        self.external_owners = {
            owner.lower() for owner in self.settings.external_identity_store_owners
        }

    def sync(self) -> List[AccessProvider]:
        access_providers: List[AccessProvider] = []

        logger.info("Reading account roles from Snowflake")
        access_providers.extend(self.import_account_roles())

        logger.info("Reading outbound shares from Snowflake")
        access_providers.extend(self.import_outbound_shares())

        if self.settings.database_roles:
            logger.info("Reading database roles from Snowflake")
            access_providers.extend(self.import_database_roles())

        if self.settings.applications:
            logger.info("Reading application roles from Snowflake")
            access_providers.extend(self.import_application_roles())

        if self.settings.standard_edition:
            logger.info(
                "Skipping masking policies and row access policies due to "
                "Snowflake Standard Edition."
            )
        else:
            if self.settings.skip_columns:
                logger.info("Skipping masking policies")
            else:
                logger.info("Reading masking policies from Snowflake")
                access_providers.extend(self.import_policies(MASKING, Action.MASK))

            logger.info("Reading row access policies from Snowflake")
            access_providers.extend(self.import_policies(ROW_ACCESS, Action.FILTERED))

        logger.info(f"Imported {len(access_providers)} access providers")

        return access_providers

    # Roles

    def import_account_roles(self) -> List[AccessProvider]:
        tags: Dict[str, List[Tag]] = {}
        if not self.settings.standard_edition and not self.settings.skip_tags:
            try:
                tags = self.repository.get_tags_by_domain("ROLE")
            except RepositoryError as exc:
                logger.error(f"Error retrieving tags for account roles: {exc}")

        access_providers = []
        for entity in self.repository.get_account_roles():
            if entity.name in self.excluded_roles:
                logger.info(f"Skipping Snowflake ROLE {entity.name}")
                continue

            ap = self.role_access_provider(AccountRole(entity.name), entity)
            ap.tags = list(tags.get(entity.name, []))
            access_providers.append(ap)

        return access_providers

    def import_database_roles(self) -> List[AccessProvider]:
        excluded = {db.upper() for db in self.settings.excluded_databases}
        databases = [db.name for db in self.context.databases()]
        databases += [
            share.name
            for share in self.context.inbound_shares()
            if share.name.upper() not in excluded
        ]

        access_providers = []
        for database in databases:
            logger.info(f"Reading roles from Snowflake inside database {database}")

            for entity in self.repository.get_database_roles(database):
                role = DatabaseRole(database, entity.name)
                if role.qualified_name in self.excluded_roles:
                    logger.info(
                        f"Skipping Snowflake DATABASE ROLE {role.qualified_name}"
                    )
                    continue

                ap = self.role_access_provider(role, entity)
                # Users can not be granted a database role directly
                ap.who_locked = True
                ap.what_locked = True
                access_providers.append(ap)

        return access_providers

    def import_application_roles(self) -> List[AccessProvider]:
        excluded = {db.upper() for db in self.settings.excluded_databases}

        access_providers = []
        for application in self.repository.get_applications():
            if application.name.upper() in excluded:
                continue

            logger.info(
                f"Reading roles from Snowflake inside application {application.name}"
            )

            try:
                entities = self.repository.get_application_roles(application.name)
            except RepositoryError as exc:
                logger.error(
                    f"Error retrieving roles for application {application.name!r}: "
                    f"{exc}"
                )
                continue

            for entity in entities:
                role = ApplicationRole(application.name, entity.name)
                if role.qualified_name in self.excluded_roles:
                    logger.info(
                        f"Skipping Snowflake APPLICATION ROLE {role.qualified_name}"
                    )
                    continue

                ap = self.role_access_provider(role, entity, with_what=False)
                ap.who_locked = True
                ap.what_locked = True
                ap.delete_locked = True
                access_providers.append(ap)

        return access_providers

    def role_access_provider(
        self, role: RoleScope, entity: RoleEntity, with_what: bool = True
    ) -> AccessProvider:
        logger.info(f"Reading Snowflake {role.kind.value} {role.qualified_name}")

        external_id = to_external_id(role)
        from_external_store = entity.owner.lower() in self.external_owners

        who, incomplete = self.who_of_role(role, from_external_store)

        ap = AccessProvider(
            id=external_id,
            name=role.qualified_name,
            action=Action.GRANT,
            naming_hint=role.name,
            external_id=external_id,
            actual_name=role.name,
            type=role.kind.value,
            description=entity.comment,
            who=who,
            incomplete=incomplete,
        )

        if from_external_store:
            if self.settings.link_to_external_identity_store_groups:
                # Only what is still managed from here
                ap.who_locked = True
                ap.inheritance_locked = True
                ap.name_locked = True
                ap.delete_locked = True
            else:
                ap.not_internalizable = True

        if with_what:
            ap.what = self.what_items(self.repository.get_grants_to_role(role))

        if is_not_internalizable_role(external_id, role.kind):
            logger.info(f"Marking role {external_id} as read-only (notInternalizable)")
            ap.not_internalizable = True

        return ap

    def who_of_role(
        self, role: RoleScope, from_external_store: bool
    ) -> Tuple[WhoItem, bool]:
        who = WhoItem()
        incomplete = False

        if from_external_store and self.settings.link_to_external_identity_store_groups:
            who.groups.append(role.name)
            return who, incomplete

        for grantee in self.repository.get_grants_of_role(role):
            granted_to = grantee.granted_to.upper()
            name = clean_double_quotes(grantee.grantee_name)

            if granted_to == "USER":
                who.users.append(name)
            elif granted_to == "ROLE":
                if grantee.grantee_name in self.excluded_roles:
                    logger.warning(
                        f"Skipping Snowflake ROLE {grantee.grantee_name!r} may break "
                        f"the hierarchy for role {role.qualified_name!r}"
                    )
                    incomplete = True
                    continue

                who.inherit_from.append(to_external_id(AccountRole(name)))
            elif granted_to == "SHARE":
                who.inherit_from.append(share_external_id(name))
            elif granted_to == "DATABASE_ROLE":
                if grantee.grantee_name in self.excluded_roles:
                    logger.warning(
                        f"Skipping Snowflake DATABASE ROLE {grantee.grantee_name!r} "
                        f"may break the hierarchy for role {role.qualified_name!r}"
                    )
                    incomplete = True
                    continue

                database, role_name = parse_namespaced_role_name(grantee.grantee_name)
                who.inherit_from.append(
                    to_external_id(DatabaseRole(database, role_name))
                )

        return who, incomplete

    def what_items(self, grants: List[GrantToRole]) -> List[WhatItem]:
        """
        Coalesce consecutive grants on the same object into one What item.

        USAGE on databases and schemas is left out as it is added again on
        export. The first table grant in an inbound share adds IMPORTED
        PRIVILEGES on the shared database.
        """
        inbound_shares = {share.name for share in self.context.inbound_shares()}
        shares_applied: Set[str] = set()

        items: List[WhatItem] = []
        current: Optional[WhatItem] = None

        for grant in grants:
            granted_on = grant.granted_on.upper()
            if granted_on in ("ROLE", "DATABASE_ROLE"):
                continue

            object_type = type_from_grant(granted_on)
            full_name = grant.name
            if object_type in (ObjectKind.FUNCTION.value, ObjectKind.PROCEDURE.value):
                full_name = function_name_from_grant(full_name)

            if current is None or current.data_object.full_name != full_name:
                if current is not None and current.permissions:
                    items.append(current)
                current = WhatItem(DataObjectReference(full_name, object_type))

            if self._imported_permission(grant.privilege, granted_on):
                current.permissions.append(grant.privilege)

            database = clean_double_quotes(grant.name.split(".")[0])
            if (
                granted_on == "TABLE"
                and database in inbound_shares
                and database not in shares_applied
            ):
                items.append(
                    WhatItem(
                        DataObjectReference(
                            database, shared(ObjectKind.DATABASE.value)
                        ),
                        [IMPORTED_PRIVILEGES],
                    )
                )
                shares_applied.add(database)

        if current is not None and current.permissions:
            items.append(current)

        return items

    @staticmethod
    def _imported_permission(privilege: str, granted_on: str) -> bool:
        if granted_on not in IMPORTED_GRANT_TYPES:
            return False

        if privilege.upper() == "OWNERSHIP":
            return False

        return not (
            privilege.upper() == USAGE and granted_on in ("DATABASE", "SCHEMA")
        )

    # Shares

    def import_outbound_shares(self) -> List[AccessProvider]:
        shares: Dict[str, List[ShareEntity]] = {}
        for entity in self.repository.get_outbound_shares():
            shares.setdefault(entity.name, []).append(entity)

        access_providers = []
        for name, entities in shares.items():
            if name in self.excluded_roles:
                logger.info(f"Skipping Snowflake SHARE {name}")
                continue

            try:
                access_providers.append(self.share_access_provider(name, entities))
            except ValueError as exc:
                logger.warning(f"Error importing Snowflake share {name!r}: {exc}")

        return access_providers

    def share_access_provider(
        self, name: str, entities: List[ShareEntity]
    ) -> AccessProvider:
        logger.info(f"Reading Snowflake SHARE {name} ({len(entities)} items)")

        recipients: List[str] = []
        database: Optional[str] = None

        for entity in entities:
            accounts = [account.strip() for account in entity.to.split(",")]
            accounts = [account for account in accounts if account]
            if not accounts:
                continue

            recipients.extend(accounts)

            if database is None:
                database = entity.database_name
            elif database != entity.database_name:
                raise ValueError(
                    f"share {name} has multiple databases: {database} and "
                    f"{entity.database_name}"
                )

        external_id = share_external_id(name)
        return AccessProvider(
            id=external_id,
            name=name,
            action=Action.SHARE,
            naming_hint=name,
            external_id=external_id,
            actual_name=name,
            who=WhoItem(recipients=recipients),
            what=self.what_items(self.repository.get_grants_to_share(name)),
        )

    # Policies

    def import_policies(self, kind: str, action: Action) -> List[AccessProvider]:
        try:
            policies = self.repository.get_policies(kind)
        except RepositoryError as exc:
            # Standard edition accounts that were not configured as such
            if "Unsupported feature" in str(exc):
                logger.warning(
                    f"Could not fetch policies of type {kind}; unsupported feature."
                )
                return []
            raise

        access_providers = []
        for policy in policies:
            if not policy.kind.replace("_", " ").startswith(kind):
                logger.warning(
                    f"Skipping policy {policy.name} of kind {policy.kind}, "
                    f"expected: {kind}"
                )
                continue

            if policy.name.upper().startswith(OBJECT_PREFIX):
                logger.debug(f"Policy {policy.name} is managed by accessfrost")
                continue

            logger.info(
                f"Reading Snowflake {kind} policy {policy.name} in "
                f"{policy.database_name}.{policy.schema_name}"
            )

            ap = self.policy_access_provider(
                kind, action, policy.database_name, policy.schema_name, policy.name
            )
            if ap is not None:
                access_providers.append(ap)

        return access_providers

    def policy_access_provider(
        self, kind: str, action: Action, database: str, schema: str, name: str
    ) -> Optional[AccessProvider]:
        full_name = f"{database}-{schema}-{name}"
        qualified = f"{database}.{schema}.{name}"

        try:
            descriptions = self.repository.describe_policy(kind, database, schema, name)
        except RepositoryError as exc:
            logger.warning(f"Error fetching description for policy {qualified}: {exc}")
            return None

        if len(descriptions) != 1:
            logger.warning(
                f"Found {len(descriptions)} definitions for {kind} policy "
                f"{qualified}, only expecting one"
            )
            return None

        try:
            references = self.repository.get_policy_references(database, schema, name)
        except RepositoryError as exc:
            logger.warning(f"Error fetching policy references for {qualified}: {exc}")
            return None

        ap = AccessProvider(
            id=full_name,
            name=full_name,
            action=action,
            naming_hint=name,
            external_id=full_name,
            actual_name=full_name,
            not_internalizable=True,
            policy=descriptions[0].body,
        )

        for reference in references:
            if reference.policy_status.upper() != "ACTIVE":
                continue

            table = (
                f"{reference.ref_database_name}.{reference.ref_schema_name}."
                f"{reference.ref_entity_name}"
            )

            if reference.policy_kind == "MASKING_POLICY":
                if not reference.ref_column_name:
                    logger.info(
                        f"Masking policy {qualified} refers to something that "
                        "isn't a column. Skipping"
                    )
                    continue

                data_object = DataObjectReference(
                    f"{table}.{reference.ref_column_name}", ObjectKind.COLUMN.value
                )
            elif reference.policy_kind == "ROW_ACCESS_POLICY":
                data_object = DataObjectReference(table, ObjectKind.TABLE.value)
            else:
                continue

            ap.what.append(WhatItem(data_object))

        return ap
