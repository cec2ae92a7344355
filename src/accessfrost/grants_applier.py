"""
Reconcile grant and purpose access providers with native roles.

Deleted access providers are handled first. Then every other access provider
is created, renamed or updated in the order the classifier returned them.
Each one gets exactly one feedback record.
"""

from typing import List, Set, Tuple

from accessfrost.error import (
    AccessProviderError,
    RepositoryError,
    RowLimitExceededError,
)
from accessfrost.expected_grants import ExpectedGrantsBuilder
from accessfrost.feedback import AccessProviderFeedback, FeedbackHandler
from accessfrost.grants import ACCOUNT, Grant, diff_grants, function_name_from_grant
from accessfrost.identifiers import join, split_full_name
from accessfrost.logger import GLOBAL_LOGGER as logger
from accessfrost.models import AccessProvider, MutationAction
from accessfrost.mutation_classifier import Classification, ClassifiedGrant
from accessfrost.object_kinds import ObjectKind, type_from_grant, verify_grant
from accessfrost.rename_resolver import RenameResolver
from accessfrost.role_scope import (
    AccountRole,
    ApplicationRole,
    DatabaseRole,
    RoleKind,
    RoleScope,
    clean_double_quotes,
    matches_any,
    parse_namespaced_role_name,
    to_external_id,
)
from accessfrost.run_context import RunContext

GRANTED_TO_USER = "USER"
GRANTED_TO_ROLE = "ROLE"
GRANTED_TO_DATABASE_ROLE = "DATABASE_ROLE"
GRANTED_TO_APPLICATION_ROLE = "APPLICATION_ROLE"
GRANTED_TO_SHARE = "SHARE"

FUNCTION_TYPES = (ObjectKind.FUNCTION.value, ObjectKind.PROCEDURE.value)

ItemErrors = (AccessProviderError, RepositoryError, ValueError)


def create_comment(access_provider: AccessProvider, update: bool) -> str:
    action = "Updated" if update else "Created"
    return (
        f"{action} by accessfrost from access provider {access_provider.name}. "
        f"{access_provider.description}"
    )


class GrantsApplier:
    def __init__(
        self,
        context: RunContext,
        classification: Classification,
        feedback_handler: FeedbackHandler,
    ) -> None:
        self.context = context
        self.repository = context.repository
        self.settings = context.settings
        self.classification = classification
        self.feedback_handler = feedback_handler

        self.expected_grants = ExpectedGrantsBuilder(context)
        self.rename_resolver = RenameResolver(context)

    def apply(self) -> None:
        to_remove = self.classification.grants_to_remove
        to_process = self.classification.grants_to_process

        logger.info(
            "Configuring access providers as roles in Snowflake. "
            f"Updating {len(to_process)} roles and removing {len(to_remove)} roles"
        )

        self.remove_all(to_remove)
        self.create_or_update_all(to_process)

    # Remove

    def remove_all(self, items: List[ClassifiedGrant]) -> None:
        for item in items:
            feedback = AccessProviderFeedback(
                access_provider=item.access_provider.id, external_id=item.external_id
            )

            try:
                logger.info(f"Dropping role {item.external_id!r}")
                self.repository.drop_role(item.role)
            except RowLimitExceededError:
                raise
            except ItemErrors as exc:
                if "does not exist" not in str(exc):
                    message = f"unable to drop role {item.external_id!r}: {exc}"
                    logger.error(message)
                    feedback.errors.append(message)

            self.context.role_dropped(item.role)
            self.feedback_handler.add_feedback(feedback)

    # Create, rename and update

    def create_or_update_all(self, items: List[ClassifiedGrant]) -> None:
        calculated_roles = self.classification.calculated_roles()

        for item in items:
            feedback = AccessProviderFeedback(
                access_provider=item.access_provider.id,
                external_id=item.external_id,
                type=item.role.kind.value,
            )

            try:
                if item.action == MutationAction.CREATE:
                    self.create(item)
                elif item.action == MutationAction.RENAME:
                    self.rename(item, calculated_roles)
            except RowLimitExceededError:
                raise
            except ItemErrors as exc:
                # Never update a role under the wrong name
                self._report(feedback, exc)
                continue

            try:
                self.update(item)
            except RowLimitExceededError:
                raise
            except ItemErrors as exc:
                self._report(feedback, exc)
                continue

            feedback.actual_name = item.role.name
            self.feedback_handler.add_feedback(feedback)

    def _report(self, feedback: AccessProviderFeedback, exc: Exception) -> None:
        logger.error(f"Access provider {feedback.access_provider!r}: {exc}")
        feedback.errors.append(str(exc))
        self.feedback_handler.add_feedback(feedback)

    def create(self, item: ClassifiedGrant) -> None:
        if item.access_provider.delete_locked:
            logger.warning(
                f"Role {item.external_id!r} does not exist but is marked as delete "
                "locked. Not creating the role as it is probably removed externally."
            )
            return

        if self.context.role_exists(item.role):
            logger.warning(
                f"Role {item.external_id!r} already exists in Snowflake. "
                "We are going to take over this role."
            )
            return

        logger.info(f"Creating role {item.external_id!r}")
        self.repository.create_role(item.role)
        self.context.role_created(item.role)

    def rename(self, item: ClassifiedGrant, calculated_roles: Set[RoleScope]) -> None:
        if item.previous is None:
            raise AccessProviderError(
                f"access provider {item.access_provider.id!r} has no externalId, "
                "so a rename is not possible"
            )

        self.rename_resolver.resolve(
            item.role, item.previous, item.previous in calculated_roles
        )

    def update(self, item: ClassifiedGrant) -> None:
        ap = item.access_provider
        role = item.role

        logger.info(
            f"Updating access provider {ap.name!r} (Ignore who: {ap.who_locked}; "
            f"Ignore inheritance: {ap.inheritance_locked}; "
            f"Ignore what: {ap.what_locked})"
        )

        # Only comment on roles that are fully under our control
        if not (ap.who_locked or ap.inheritance_locked or ap.what_locked):
            update = item.action != MutationAction.CREATE
            self.repository.comment_role_if_exists(role, create_comment(ap, update))

        if not ap.what_locked:
            self.update_what(item)

        if not ap.who_locked or not ap.inheritance_locked:
            self.update_who(item)

        logger.info(f"Done updating role {item.external_id!r}")

        self.set_owner_tags(ap, role)

    # What

    def update_what(self, item: ClassifiedGrant) -> None:
        ap = item.access_provider
        role = item.role

        found: List[Grant] = []
        native = self.context.native_role(role)
        if native is not None:
            # New roles can not have stale future grants
            self._revoke_future_grants(ap, role)
            found = self.found_grants(native)

        expected = self.expected_grants.build(ap)
        to_add, to_remove = diff_grants(found, expected)

        logger.info(
            f"Found {len(to_add)} grants to add and {len(to_remove)} grants to remove "
            f"for role {item.external_id!r}"
        )

        for grant in to_add:
            if verify_grant(grant.permission, grant.on_type):
                self.repository.execute_grant_on_role(
                    grant.permission, grant.on_with_type(), role
                )

        for grant in to_remove:
            if verify_grant(grant.permission, grant.on_type):
                self.repository.execute_revoke_on_role(
                    grant.permission, grant.on_with_type(), role
                )

    def _revoke_future_grants(self, ap: AccessProvider, role: RoleScope) -> None:
        for what in ap.what:
            object_type = what.data_object.type.lower()
            name = join(*split_full_name(what.data_object.full_name))

            if object_type == ObjectKind.DATABASE.value:
                self.repository.execute_revoke_on_role(
                    "ALL", f"FUTURE SCHEMAS IN DATABASE {name}", role
                )
                self.repository.execute_revoke_on_role(
                    "ALL", f"FUTURE TABLES IN DATABASE {name}", role
                )
            elif object_type == ObjectKind.SCHEMA.value:
                self.repository.execute_revoke_on_role(
                    "ALL", f"FUTURE TABLES IN SCHEMA {name}", role
                )

    def found_grants(self, role: RoleScope) -> List[Grant]:
        found = []

        for grant in self.repository.get_grants_to_role(role):
            privilege = grant.privilege.upper()
            granted_on = grant.granted_on.upper()

            if granted_on == "ACCOUNT":
                found.append(Grant(grant.privilege, ACCOUNT, ""))
            elif privilege == "OWNERSHIP":
                logger.info(
                    f"Ignoring permission {grant.privilege!r} on {grant.name!r} for "
                    f"role {to_external_id(role)!r} as this will remain untouched"
                )
            elif privilege == "USAGE" and granted_on in (
                GRANTED_TO_ROLE,
                GRANTED_TO_DATABASE_ROLE,
            ):
                logger.debug(
                    f"Ignoring USAGE permission on {granted_on} {grant.name!r}"
                )
            else:
                on_type = type_from_grant(granted_on)
                name = grant.name
                if on_type in FUNCTION_TYPES:
                    name = function_name_from_grant(name)
                found.append(Grant(grant.privilege, on_type, name))

        logger.debug(f"Found grants for role {to_external_id(role)!r}: {found}")

        return found

    # Who

    def update_who(self, item: ClassifiedGrant) -> None:
        ap = item.access_provider
        role = item.role

        current_users: List[str] = []
        current_roles: List[RoleScope] = []
        native = self.context.native_role(role)
        if native is not None:
            current_users, current_roles = self.current_grantees(native)

        if not ap.who_locked:
            self._update_users(role, ap.who.users, current_users)

        if not ap.inheritance_locked:
            desired_roles = []
            for reference in ap.who.inherit_from:
                resolved = self.classification.resolve_role(reference)
                if resolved is None:
                    logger.warning(
                        f"Unable to resolve inherited role {reference!r} of access "
                        f"provider {ap.id!r}. Skipping"
                    )
                elif resolved not in desired_roles:
                    desired_roles.append(resolved)

            to_add = [r for r in desired_roles if r not in current_roles]
            to_remove = [r for r in current_roles if r not in desired_roles]

            logger.info(
                f"Identified {len(to_add)} roles to add and {len(to_remove)} roles "
                f"to remove from role {item.external_id!r}"
            )

            if to_add:
                self.repository.grant_role_to_roles(
                    role, self._filter_grantees(role, to_add)
                )
            if to_remove:
                self.repository.revoke_role_from_roles(
                    role, self._filter_grantees(role, to_remove)
                )

    def current_grantees(self, role: RoleScope) -> Tuple[List[str], List[RoleScope]]:
        users: List[str] = []
        roles: List[RoleScope] = []

        for grant in self.repository.get_grants_of_role(role):
            granted_to = grant.granted_to.upper()
            name = grant.grantee_name

            if granted_to == GRANTED_TO_USER:
                users.append(name)
            elif granted_to == GRANTED_TO_ROLE:
                roles.append(AccountRole(name))
            elif granted_to == GRANTED_TO_DATABASE_ROLE:
                database, role_name = parse_namespaced_role_name(
                    clean_double_quotes(name)
                )
                roles.append(DatabaseRole(database, role_name))
            elif granted_to == GRANTED_TO_APPLICATION_ROLE:
                application, role_name = parse_namespaced_role_name(
                    clean_double_quotes(name)
                )
                roles.append(ApplicationRole(application, role_name))
            elif granted_to == GRANTED_TO_SHARE:
                # Shares are reconciled by the share applier
                logger.debug(f"Ignoring share {name!r} granted role {role.name!r}")

        return users, roles

    def _update_users(
        self, role: RoleScope, desired: List[str], current: List[str]
    ) -> None:
        to_add = [user for user in desired if user not in current]
        to_remove = [user for user in current if user not in desired]

        logger.info(
            f"Identified {len(to_add)} users to add and {len(to_remove)} users to "
            f"remove from role {to_external_id(role)!r}"
        )

        if to_add:
            if role.kind != RoleKind.ACCOUNT:
                raise AccessProviderError(
                    f"error can not assign users from a {self._describe(role)} "
                    f"{to_external_id(role)!r}"
                )
            self.repository.grant_users_to_role(role, to_add)

        if to_remove:
            if role.kind != RoleKind.ACCOUNT:
                raise AccessProviderError(
                    f"error can not unassign users from a {self._describe(role)} "
                    f"{to_external_id(role)!r}"
                )
            self.repository.revoke_users_from_role(role, to_remove)

    def _filter_grantees(
        self, role: RoleScope, grantees: List[RoleScope]
    ) -> List[RoleScope]:
        """
        Keep the grantees `role` can be granted to, leaving out the ones matching
        `ignore-links-to-roles`.
        """
        ignored = self.settings.ignore_links_to_roles
        filtered: List[RoleScope] = []

        for grantee in grantees:
            if grantee.kind == RoleKind.ACCOUNT:
                if not matches_any(grantee.name, ignored):
                    filtered.append(grantee)
                continue

            if grantee.kind != role.kind:
                if role.kind == RoleKind.ACCOUNT and grantee.kind == RoleKind.DATABASE:
                    raise AccessProviderError(
                        "error can not assign database roles to an account role "
                        f"{to_external_id(role)!r} - [{to_external_id(grantee)}]"
                    )
                logger.warning(
                    f"Unable to link {self._describe(grantee)} "
                    f"{to_external_id(grantee)!r} with {self._describe(role)} "
                    f"{to_external_id(role)!r}. Skipping"
                )
                continue

            if grantee.namespace != role.namespace:
                raise AccessProviderError(
                    f"namespaced role {role.name!r} is from a different namespace "
                    f"than {grantee.name!r}"
                )

            if not matches_any(grantee.name, ignored):
                filtered.append(grantee)

        return filtered

    @staticmethod
    def _describe(role: RoleScope) -> str:
        return role.kind.value.replace("-", " ")

    # Owner tags

    def set_owner_tags(self, ap: AccessProvider, role: RoleScope) -> None:
        if not ap.owners or not self.settings.has_owner_tags:
            return

        tags = (
            (
                self.settings.role_owner_email_tag,
                [f"email:{owner.email}" for owner in ap.owners if owner.email],
            ),
            (
                self.settings.role_owner_name_tag,
                [owner.account_name for owner in ap.owners if owner.account_name],
            ),
            (
                self.settings.role_owner_group_tag,
                [owner.group_name for owner in ap.owners if owner.group_name],
            ),
        )

        for tag_name, values in tags:
            if tag_name:
                self.repository.set_tag_on_role(role, tag_name, ",".join(values))
