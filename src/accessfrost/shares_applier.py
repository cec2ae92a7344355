from typing import List

from accessfrost.error import (
    AccessProviderError,
    RepositoryError,
    RowLimitExceededError,
)
from accessfrost.expected_grants import ExpectedGrantsBuilder
from accessfrost.feedback import AccessProviderFeedback, FeedbackHandler
from accessfrost.grants import Grant, diff_grants, function_name_from_grant
from accessfrost.logger import GLOBAL_LOGGER as logger
from accessfrost.models import AccessProvider
from accessfrost.mutation_classifier import Classification
from accessfrost.naming import OBJECT_PREFIX
from accessfrost.object_kinds import ObjectKind, type_from_grant, verify_grant
from accessfrost.role_scope import SHARE_PREFIX, share_external_id
from accessfrost.run_context import RunContext

ItemErrors = (AccessProviderError, RepositoryError, ValueError)


def share_name(access_provider: AccessProvider) -> str:
    """A share keeps the name it was created with."""
    if access_provider.actual_name:
        return access_provider.actual_name

    return OBJECT_PREFIX + access_provider.hint.upper()


class SharesApplier:
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
        self.grants_builder = ExpectedGrantsBuilder(context)

    def apply(self) -> None:
        shares = self.classification.shares
        to_update = [share for share in shares if not share.delete]
        to_remove = [share for share in shares if share.delete]

        logger.info(
            "Configuring access providers as shares in Snowflake. "
            f"Update {len(to_update)} shares and remove {len(to_remove)} shares"
        )

        for share in to_update:
            name = share_name(share)
            feedback = AccessProviderFeedback(
                access_provider=share.id,
                actual_name=name,
                external_id=share_external_id(name),
            )

            try:
                self.create_or_update(share, name)
            except RowLimitExceededError:
                raise
            except ItemErrors as exc:
                logger.error(f"Unable to update share {name!r}: {exc}")
                feedback.errors.append(str(exc))

            self.feedback_handler.add_feedback(feedback)

        for share in to_remove:
            self.remove(share)

    def create_or_update(self, share: AccessProvider, name: str) -> None:
        logger.info(f"Updating share {share.name!r}")

        self.repository.create_share(name)

        found: List[Grant] = []
        if share.external_id:
            found = self.found_grants(name)

        expected = self.grants_builder.build(share)
        to_add, to_remove = diff_grants(found, expected)

        for grant in to_add:
            if verify_grant(grant.permission, grant.on_type):
                self.repository.execute_grant_on_share(
                    grant.permission, grant.on_with_type(), name
                )

        for grant in to_remove:
            if verify_grant(grant.permission, grant.on_type):
                self.repository.execute_revoke_on_share(
                    grant.permission, grant.on_with_type(), name
                )

        if len(expected) > 0:
            self.repository.set_share_accounts(name, share.who.recipients)
        else:
            logger.warning(
                f"Share {name} has no database assigned. Cannot add accounts to share"
            )

    def found_grants(self, name: str) -> List[Grant]:
        found = []

        for grant in self.repository.get_grants_to_share(name):
            if grant.privilege.upper() == "OWNERSHIP":
                logger.info(
                    f"Ignoring permission {grant.privilege!r} on {grant.name!r} for "
                    f"share {name!r} as this will remain untouched"
                )
                continue

            on_type = type_from_grant(grant.granted_on)
            object_name = grant.name
            if on_type == ObjectKind.FUNCTION.value:
                object_name = function_name_from_grant(object_name)

            found.append(Grant(grant.privilege, on_type, object_name))

        return found

    def remove(self, share: AccessProvider) -> None:
        if not share.external_id:
            logger.warning(
                f"No externalId defined for deleted share {share.id!r}. "
                "This will be ignored"
            )
            self.feedback_handler.add_feedback(AccessProviderFeedback(share.id))
            return

        name = share.external_id
        if name.startswith(SHARE_PREFIX):
            name = name[len(SHARE_PREFIX) :]

        feedback = AccessProviderFeedback(
            access_provider=share.id, actual_name=name, external_id=share.external_id
        )

        logger.info(f"Remove share {name!r}")
        try:
            self.repository.drop_share(name)
        except RowLimitExceededError:
            raise
        except RepositoryError as exc:
            if "does not exist" not in str(exc):
                logger.error(f"Unable to drop share {name!r}: {exc}")
                feedback.errors.append(str(exc))

        self.feedback_handler.add_feedback(feedback)
