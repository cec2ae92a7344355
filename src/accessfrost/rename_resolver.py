from accessfrost.logger import GLOBAL_LOGGER as logger
from accessfrost.role_scope import RoleScope, to_external_id
from accessfrost.run_context import RunContext


class RenameResolver:
    """
    Make sure the new name of a renamed role exists before its grants are
    updated.

    Which statements are issued depends on which of the two names exist and on
    whether another access provider of this run still resolves to the old name:

    ============  ============  =============  =====================
    new exists    old exists    old claimed    outcome
    ============  ============  =============  =====================
    no            yes           no             rename old to new
    no            yes           yes            create new
    yes           yes           yes            nothing
    yes           yes           no             drop old
    yes           no            -              adopt new
    no            no            -              create new
    ============  ============  =============  =====================
    """

    def __init__(self, context: RunContext) -> None:
        self.context = context
        self.repository = context.repository

    def resolve(self, new: RoleScope, old: RoleScope, old_claimed: bool) -> None:
        new_id, old_id = to_external_id(new), to_external_id(old)
        new_exists = self.context.role_exists(new)
        old_exists = self.context.role_exists(old)

        # Roles can not be moved to another database or application
        if new.kind != old.kind or new.namespace != old.namespace:
            logger.info(
                f"Role {old_id!r} moves to another namespace, creating {new_id!r}"
            )
            if not new_exists:
                self._create(new)
            if old_exists and not old_claimed:
                self._drop(old)
            return

        if not new_exists:
            if old_exists and not old_claimed:
                logger.info(f"Renaming role {old_id!r} to {new_id!r}")
                self.repository.rename_role(old, new)
                self.context.role_renamed(old, new)
            else:
                if old_exists:
                    logger.info(
                        f"Role {old_id!r} is still used by another access provider. "
                        f"Creating {new_id!r} instead of renaming"
                    )
                self._create(new)
            return

        if not old_exists:
            logger.info(f"Role {new_id!r} already exists, taking it over")
        elif old_claimed:
            logger.info(
                f"Both {old_id!r} and {new_id!r} exist and {old_id!r} is still "
                "used by another access provider. Nothing to rename"
            )
        else:
            logger.info(
                f"Role {new_id!r} already exists, dropping the old role {old_id!r}"
            )
            self._drop(old)

    def _create(self, role: RoleScope) -> None:
        self.repository.create_role(role)
        self.context.role_created(role)

    def _drop(self, role: RoleScope) -> None:
        self.repository.drop_role(role)
        self.context.role_dropped(role)
