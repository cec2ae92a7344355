import re
from typing import Dict, List, Set, Tuple

from accessfrost.error import (
    AccessProviderError,
    RepositoryError,
    RowLimitExceededError,
)
from accessfrost.feedback import AccessProviderFeedback, FeedbackHandler
from accessfrost.logger import GLOBAL_LOGGER as logger
from accessfrost.mask_factory import MaskFactory, MaskingBeneficiaries
from accessfrost.models import AccessProvider
from accessfrost.mutation_classifier import Classification
from accessfrost.naming import ID_ALPHABET, prefixed_name, random_suffix
from accessfrost.repository import MaskPolicyDefinition
from accessfrost.run_context import RunContext

MASKING = "MASKING"


def unique_mask_name(name: str) -> str:
    return f"{prefixed_name(name)}_{random_suffix()}"


class MasksApplier:
    """
    Every mask gets a new unique name on each run. Policies are created per
    schema and column type as `<unique name>_<type>`, after which the policies
    of the previous run are unset and dropped.
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
        self.mask_factory = MaskFactory(context.settings)

    def apply(self) -> None:
        masks = self.classification.masks
        to_update = [mask for mask in masks if not mask.delete]
        to_remove = [mask for mask in masks if mask.delete]

        if self.context.settings.standard_edition:
            if masks:
                logger.error(
                    "Skipping masking policies due to Snowflake Standard Edition."
                )
                for mask in masks:
                    self.feedback_handler.add_feedback(
                        AccessProviderFeedback(
                            access_provider=mask.id,
                            external_id=mask.external_id,
                            errors=[
                                "masking policies are not supported on "
                                "Standard Edition"
                            ],
                        )
                    )
            return

        logger.info(
            "Configuring access providers as masks in Snowflake. "
            f"Create/update {len(to_update)} masks and remove {len(to_remove)} masks"
        )

        for mask in to_update:
            self.create_or_update(mask)

        for mask in to_remove:
            self.remove(mask)

        logger.info("Finalized masks updates and removals on Snowflake")

    def create_or_update(self, mask: AccessProvider) -> None:
        unique_name = unique_mask_name(mask.name)
        feedback = AccessProviderFeedback(
            access_provider=mask.id, actual_name=unique_name, external_id=unique_name
        )

        try:
            feedback.warnings.extend(self._create_or_update(mask, unique_name))
        except RowLimitExceededError:
            raise
        except (AccessProviderError, RepositoryError) as exc:
            logger.error(f"Unable to update mask {mask.name!r}: {exc}")
            feedback.errors.append(str(exc))

        self.feedback_handler.add_feedback(feedback)

    def _create_or_update(
        self, mask: AccessProvider, unique_name: str
    ) -> List[str]:
        logger.info(f"Updating mask {mask.name!r}")
        global_name = prefixed_name(mask.name)

        beneficiaries = self.beneficiaries(mask)

        columns_per_schema: Dict[Tuple[str, str], List[str]] = {}
        for what in mask.what:
            parts = what.data_object.full_name.split(".")
            if len(parts) != 4:
                logger.error(
                    f"Invalid fullname for column {what.data_object.full_name} "
                    f"in mask {mask.name}"
                )
                continue
            columns_per_schema.setdefault((parts[0], parts[1]), []).append(
                what.data_object.full_name
            )

        existing_policies = self.repository.get_policies(
            MASKING, like=f"{global_name}%"
        )

        warnings = []
        for (database, schema), columns in columns_per_schema.items():
            logger.info(f"Updating mask {mask.name!r} for schema {database}.{schema}")
            definitions, schema_warnings = self.definitions(
                database, schema, unique_name, columns, mask.mask_type, beneficiaries
            )
            warnings.extend(schema_warnings)
            self.repository.create_mask_policies(database, schema, definitions)

        # Policies left over from previous runs
        previous = re.compile(
            rf"^({re.escape(global_name)}_[{ID_ALPHABET}]{{8}})_", re.IGNORECASE
        )
        dropped: Set[Tuple[str, str, str]] = set()
        for policy in existing_policies:
            match = previous.match(policy.name)
            if match is None:
                continue

            key = (policy.database_name, policy.schema_name, match.group(1))
            if key not in dropped:
                self.repository.drop_mask_policy(*key)
                dropped.add(key)

        return warnings

    def definitions(
        self,
        database: str,
        schema: str,
        unique_name: str,
        columns: List[str],
        mask_type,
        beneficiaries: MaskingBeneficiaries,
    ) -> Tuple[List[MaskPolicyDefinition], List[str]]:
        column_types = self.repository.get_column_types(database, columns)
        if len(column_types) != len(set(columns)):
            raise AccessProviderError("unable to load column details")

        columns_per_type: Dict[str, List[str]] = {}
        for column in columns:
            columns_per_type.setdefault(column_types[column], []).append(column)

        definitions = []
        warnings = []
        for column_type, typed_columns in columns_per_type.items():
            policy = self.mask_factory.create_mask(
                f"{database}.{schema}.{unique_name}",
                column_type,
                mask_type,
                beneficiaries,
            )
            if policy.warning is not None:
                warnings.append(policy.warning)

            definitions.append(
                MaskPolicyDefinition(policy.name, policy.statement, typed_columns)
            )

        return definitions, warnings

    def beneficiaries(self, mask: AccessProvider) -> MaskingBeneficiaries:
        beneficiaries = MaskingBeneficiaries(users=list(mask.who.users))

        for reference in mask.who.inherit_from:
            role = self.classification.resolve_role(reference)
            if role is not None:
                beneficiaries.roles.append(role.qualified_name)

        return beneficiaries

    def remove(self, mask: AccessProvider) -> None:
        name = mask.external_id
        if not name:
            logger.warning(
                f"No externalId defined for deleted mask {mask.id!r}. "
                "This will be ignored"
            )
            self.feedback_handler.add_feedback(AccessProviderFeedback(mask.id))
            return

        feedback = AccessProviderFeedback(
            access_provider=mask.id, actual_name=name, external_id=name
        )

        logger.info(f"Remove mask {name!r}")
        try:
            schemas = {
                (policy.database_name, policy.schema_name)
                for policy in self.repository.get_policies(MASKING, like=f"{name}%")
            }
            for database, schema in sorted(schemas):
                self.repository.drop_mask_policy(database, schema, name)
        except RowLimitExceededError:
            raise
        except RepositoryError as exc:
            logger.error(f"Unable to remove mask {name!r}: {exc}")
            feedback.errors.append(str(exc))

        self.feedback_handler.add_feedback(feedback)
