"""
Decide what has to happen to every access provider of an export run.

Grant and purpose access providers get a native role name and one of the
create, update, rename or delete actions. Masks, filters and shares are only
grouped here; their appliers pick their own native names.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from accessfrost.error import AccessProviderError
from accessfrost.feedback import AccessProviderFeedback, FeedbackHandler
from accessfrost.identifiers import split_full_name
from accessfrost.logger import GLOBAL_LOGGER as logger
from accessfrost.models import GRANT_ACTIONS, AccessProvider, Action, MutationAction
from accessfrost.naming import strip_unique_suffix, translate
from accessfrost.role_scope import (
    RoleKind,
    RoleScope,
    make_role,
    parse_external_id,
    parse_role_external_id,
    to_external_id,
)
from accessfrost.run_context import RunContext

ID_PREFIX = "ID:"


@dataclass
class ClassifiedGrant:
    access_provider: AccessProvider
    action: MutationAction
    role: RoleScope
    previous: Optional[RoleScope] = None

    @property
    def external_id(self) -> str:
        return to_external_id(self.role)


@dataclass
class Classification:
    grants: List[ClassifiedGrant] = field(default_factory=list)
    masks: List[AccessProvider] = field(default_factory=list)
    filters: List[AccessProvider] = field(default_factory=list)
    shares: List[AccessProvider] = field(default_factory=list)

    # Access provider id to the role it will end up with, so masks and
    # filters can resolve `ID:` references before the role is created.
    role_by_id: Dict[str, RoleScope] = field(default_factory=dict)

    @property
    def grants_to_remove(self) -> List[ClassifiedGrant]:
        return [g for g in self.grants if g.action == MutationAction.DELETE]

    @property
    def grants_to_process(self) -> List[ClassifiedGrant]:
        return [g for g in self.grants if g.action != MutationAction.DELETE]

    def calculated_roles(self) -> Set[RoleScope]:
        """The roles every non deleted grant access provider resolves to."""
        return {grant.role for grant in self.grants_to_process}

    def resolve_role(self, reference: str) -> Optional[RoleScope]:
        """
        Resolve a who reference: `ID:<access provider id>` points at the role of
        another access provider of this run, anything else is an external id.
        """
        if reference.startswith(ID_PREFIX):
            return self.role_by_id.get(reference[len(ID_PREFIX) :])

        return parse_external_id(reference)


class MutationClassifier:
    def __init__(self, context: RunContext, feedback_handler: FeedbackHandler) -> None:
        self.context = context
        self.feedback_handler = feedback_handler

    def classify(self, access_providers: List[AccessProvider]) -> Classification:
        classification = Classification()
        grant_aps: List[AccessProvider] = []

        for ap in access_providers:
            if ap.action in GRANT_ACTIONS:
                grant_aps.append(ap)
            elif ap.action == Action.MASK:
                classification.masks.append(ap)
            elif ap.action == Action.FILTERED:
                classification.filters.append(ap)
            elif ap.action == Action.SHARE:
                classification.shares.append(ap)
            else:
                action = getattr(ap.action, "value", ap.action)
                self.feedback_handler.add_feedback(
                    AccessProviderFeedback(
                        access_provider=ap.id, errors=[f"Unsupported action {action}"]
                    )
                )

        results = self._classify_grants(grant_aps)

        for ap in grant_aps:
            classified = results.get(ap.id)
            if classified is None:
                continue

            classification.grants.append(classified)
            if classified.action != MutationAction.DELETE:
                classification.role_by_id[ap.id] = classified.role

        return classification

    def _classify_grants(
        self, access_providers: List[AccessProvider]
    ) -> Dict[str, ClassifiedGrant]:
        results: Dict[str, ClassifiedGrant] = {}
        pending = []

        # Roles currently held by an access provider of this run
        held_by: Dict[RoleScope, str] = {}

        for ap in access_providers:
            try:
                kind = ap.role_kind
                if ap.delete:
                    classified = self._classify_delete(ap, kind)
                    if classified is not None:
                        results[ap.id] = classified
                    continue

                namespace = self._namespace_for(ap, kind)
                previous = None
                if ap.external_id:
                    previous = parse_role_external_id(kind, ap.external_id)
                    held_by[previous] = ap.id
            except (AccessProviderError, ValueError) as exc:
                self._report_error(ap, str(exc))
                continue

            pending.append((ap, kind, namespace, previous))

        # Access providers keeping their name claim it first, so nobody else
        # is handed a name that is already in use.
        remaining = []
        for ap, kind, namespace, previous in pending:
            if previous is not None and self._keeps_name(ap, namespace, previous):
                generator = self.context.name_generator(kind, namespace)
                generator.claim(ap.id, previous.name)
                results[ap.id] = ClassifiedGrant(
                    ap, MutationAction.UPDATE, previous, previous
                )
            else:
                remaining.append((ap, kind, namespace, previous))

        for ap, kind, namespace, previous in remaining:
            try:
                role = self._generate(ap, kind, namespace, held_by)
            except ValueError as exc:
                self._report_error(ap, str(exc))
                continue

            if previous is None:
                action = MutationAction.CREATE
            else:
                action = MutationAction.RENAME
                logger.info(
                    f"Access provider {ap.id!r} will be renamed from "
                    f"{to_external_id(previous)!r} to {to_external_id(role)!r}"
                )

            results[ap.id] = ClassifiedGrant(ap, action, role, previous)

        return results

    def _classify_delete(
        self, ap: AccessProvider, kind: RoleKind
    ) -> Optional[ClassifiedGrant]:
        if not ap.external_id:
            logger.warning(
                f"No externalId defined for deleted access provider {ap.id!r}. "
                "This will be ignored"
            )
            self.feedback_handler.add_feedback(
                AccessProviderFeedback(access_provider=ap.id)
            )
            return None

        role = parse_role_external_id(kind, ap.external_id)
        return ClassifiedGrant(ap, MutationAction.DELETE, role, role)

    def _namespace_for(self, ap: AccessProvider, kind: RoleKind) -> Optional[str]:
        """
        The database or application a namespaced role lives in: the first
        part of the first What item, or else the one of its previous name.
        """
        if kind == RoleKind.ACCOUNT:
            return None

        if ap.what:
            return split_full_name(ap.what[0].data_object.full_name)[0]

        if ap.external_id:
            return parse_role_external_id(kind, ap.external_id).namespace

        raise AccessProviderError(f"unable to determine database for {kind.value}")

    def _keeps_name(
        self, ap: AccessProvider, namespace: Optional[str], previous: RoleScope
    ) -> bool:
        if previous.namespace != namespace:
            return False

        constraints = self.context.constraints
        expected = translate(ap.hint, constraints)
        return strip_unique_suffix(previous.name, constraints) == strip_unique_suffix(
            expected, constraints
        )

    def _generate(
        self,
        ap: AccessProvider,
        kind: RoleKind,
        namespace: Optional[str],
        held_by: Dict[RoleScope, str],
    ) -> RoleScope:
        generator = self.context.name_generator(kind, namespace)
        existing = self.context.existing_roles(kind, namespace)

        role = make_role(kind, namespace, generator.generate(ap.id, ap.hint))

        # A native role still held by another access provider can not be
        # taken over, move on to the next suffix.
        while role.name in existing and held_by.get(role, ap.id) != ap.id:
            logger.info(
                f"Role {to_external_id(role)!r} is still in use by access provider "
                f"{held_by[role]!r}, generating a new name for {ap.id!r}"
            )
            role = make_role(kind, namespace, generator.regenerate(ap.id, ap.hint))

        return role

    def _report_error(self, ap: AccessProvider, message: str) -> None:
        logger.error(f"Unable to classify access provider {ap.id!r}: {message}")
        self.feedback_handler.add_feedback(
            AccessProviderFeedback(
                access_provider=ap.id,
                external_id=ap.external_id,
                type=ap.type or RoleKind.ACCOUNT.value,
                errors=[message],
            )
        )
