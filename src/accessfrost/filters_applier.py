from typing import Dict, List, Optional, Set, Tuple

from accessfrost.error import (
    AccessProviderError,
    RepositoryError,
    RowLimitExceededError,
)
from accessfrost.feedback import AccessProviderFeedback, FeedbackHandler
from accessfrost.filter_criteria_builder import filter_expression
from accessfrost.identifiers import string_literal
from accessfrost.logger import GLOBAL_LOGGER as logger
from accessfrost.models import AccessProvider
from accessfrost.mutation_classifier import Classification
from accessfrost.naming import random_suffix
from accessfrost.object_kinds import ObjectKind
from accessfrost.run_context import RunContext

TABLE = ObjectKind.TABLE.value


def filter_name(schema: str, table: str) -> str:
    return f"accessfrost_{schema}_{table}_{random_suffix()}_filter"


def filter_table(access_provider: AccessProvider) -> str:
    """The single table a filter access provider applies to."""
    if (
        len(access_provider.what) != 1
        or access_provider.what[0].data_object.type.lower() != TABLE
    ):
        raise AccessProviderError("Filters can only be applied to a single table.")

    return access_provider.what[0].data_object.full_name


class FiltersApplier:
    """
    All filters on a table are combined into one row access policy. A new
    policy replaces the one currently attached to the table in a single batch.
    """

    def __init__(
        self,
        context: RunContext,
        classification: Classification,
        feedback_handler: FeedbackHandler,
    ) -> None:
        self.context = context
        self.repository = context.repository
        self.classification = classification
        self.feedback_handler = feedback_handler

    def apply(self) -> None:
        filters = self.classification.filters

        if self.context.settings.standard_edition:
            if filters:
                logger.error(
                    "Skipping filter policies due to Snowflake Standard Edition."
                )
                for ap in filters:
                    self.feedback_handler.add_feedback(
                        AccessProviderFeedback(
                            access_provider=ap.id,
                            external_id=ap.external_id,
                            errors=[
                                "row access policies are not supported on "
                                "Standard Edition"
                            ],
                        )
                    )
            return

        to_update: Dict[str, List[AccessProvider]] = {}
        to_remove: Dict[str, List[AccessProvider]] = {}

        for ap in filters:
            try:
                table = filter_table(ap)
            except AccessProviderError as exc:
                logger.error(f"Unable to process filter {ap.name!r}: {exc}")
                self.feedback_handler.add_feedback(
                    AccessProviderFeedback(
                        access_provider=ap.id,
                        external_id=ap.external_id,
                        errors=[str(exc)],
                    )
                )
                continue

            target = to_remove if ap.delete else to_update
            target.setdefault(table, []).append(ap)

        logger.info(
            "Configuring access providers as filters in Snowflake. "
            f"Update {len(to_update)} tables and remove filters from "
            f"{len(to_remove)} tables"
        )

        updated_tables: Set[str] = set()
        for table, access_providers in to_update.items():
            if self.update_table(table, access_providers):
                updated_tables.add(table)

        for table, access_providers in to_remove.items():
            self.remove_from_table(table, access_providers, table in updated_tables)

        logger.info("Finalized filter updates and removals on Snowflake")

    def update_table(self, table: str, access_providers: List[AccessProvider]) -> bool:
        database, schema, table_name = table.split(".")
        name = filter_name(schema, table_name)

        errors: List[str] = []
        try:
            expression, arguments = self.table_expression(access_providers)
            self.repository.update_filter(
                database, schema, table_name, name, arguments, expression
            )
        except RowLimitExceededError:
            raise
        except (AccessProviderError, RepositoryError) as exc:
            logger.error(f"Unable to update filter on table {table!r}: {exc}")
            errors.append(str(exc))

        for ap in access_providers:
            if errors:
                feedback = AccessProviderFeedback(
                    access_provider=ap.id,
                    actual_name=ap.actual_name,
                    external_id=ap.external_id,
                    errors=list(errors),
                )
            else:
                feedback = AccessProviderFeedback(
                    access_provider=ap.id,
                    actual_name=name,
                    external_id=f"{table}.{name}",
                )
            self.feedback_handler.add_feedback(feedback)

        return not errors

    def table_expression(
        self, access_providers: List[AccessProvider]
    ) -> Tuple[str, List[str]]:
        """
        Each access provider contributes `(who) AND (predicate)`, the
        contributions are joined with OR. Rows are hidden from everybody when
        nothing remains.
        """
        expressions = []
        arguments: List[str] = []

        for ap in access_providers:
            expression, ap_arguments = filter_expression(ap)

            # Columns of skipped filters still bind the policy to the table
            for argument in ap_arguments:
                if argument not in arguments:
                    arguments.append(argument)

            who = self.who_expression(ap)
            if who is None:
                logger.info(f"Filter {ap.name!r} has no beneficiaries. Skipping")
                continue

            expressions.append(f"({who}) AND ({expression})")

        if not expressions:
            return "FALSE", arguments

        return " OR ".join(expressions), arguments

    def who_expression(self, access_provider: AccessProvider) -> Optional[str]:
        parts = []

        if access_provider.who.users:
            users = ", ".join(
                string_literal(user) for user in access_provider.who.users
            )
            parts.append(f"current_user() IN ({users})")

        roles = []
        for reference in access_provider.who.inherit_from:
            role = self.classification.resolve_role(reference)
            if role is not None:
                name = string_literal(role.qualified_name)
                roles.append(f"IS_ROLE_IN_SESSION({name})")

        if roles:
            parts.append(" OR ".join(roles))

        if not parts:
            return None

        return " OR ".join(parts)

    def remove_from_table(
        self, table: str, access_providers: List[AccessProvider], table_updated: bool
    ) -> None:
        database, schema, table_name = table.split(".")

        errors: List[str] = []
        if table_updated:
            # The policy attached to the table was replaced while updating
            message = (
                "prevent deletion of filter because unable to create new filter "
                f"in table {table!r}"
            )
            logger.warning(message)
            errors.append(message)
        else:
            dropped: Set[str] = set()
            try:
                for ap in access_providers:
                    name = self._filter_name_from_external_id(ap)
                    if name is None or name in dropped:
                        continue

                    self.repository.drop_filter(database, schema, table_name, name)
                    dropped.add(name)
            except RowLimitExceededError:
                raise
            except RepositoryError as exc:
                logger.error(f"Unable to remove filter from table {table!r}: {exc}")
                errors.append(str(exc))

        for ap in access_providers:
            self.feedback_handler.add_feedback(
                AccessProviderFeedback(
                    access_provider=ap.id,
                    actual_name=ap.actual_name,
                    external_id=ap.external_id,
                    errors=list(errors),
                )
            )

    @staticmethod
    def _filter_name_from_external_id(ap: AccessProvider) -> Optional[str]:
        if not ap.external_id:
            logger.warning(
                f"No externalId defined for deleted filter {ap.id!r}. "
                "This will be ignored"
            )
            return None

        parts = ap.external_id.split(".")
        if len(parts) != 4:
            logger.warning(
                f"Unexpected externalId {ap.external_id!r} for filter {ap.id!r}. "
                "This will be ignored"
            )
            return None

        return parts[3]
