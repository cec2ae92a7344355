"""
Export: make the warehouse match a list of access providers.

Access providers are classified first, so the roles masks and filters refer
to are known. Masks, filters and shares are applied next and grants last.
"""

from typing import List

from accessfrost.feedback import FeedbackHandler
from accessfrost.filters_applier import FiltersApplier
from accessfrost.grants_applier import GrantsApplier
from accessfrost.logger import GLOBAL_LOGGER as logger
from accessfrost.masks_applier import MasksApplier
from accessfrost.models import AccessProvider
from accessfrost.mutation_classifier import MutationClassifier
from accessfrost.run_context import RunContext
from accessfrost.shares_applier import SharesApplier


class AccessToTargetSyncer:
    def __init__(self, context: RunContext, feedback_handler: FeedbackHandler) -> None:
        self.context = context
        self.feedback_handler = feedback_handler

    def sync(self, access_providers: List[AccessProvider]) -> None:
        logger.info(f"Exporting {len(access_providers)} access providers")

        classifier = MutationClassifier(self.context, self.feedback_handler)
        classification = classifier.classify(access_providers)

        args = (self.context, classification, self.feedback_handler)

        if classification.masks:
            MasksApplier(*args).apply()

        if classification.filters:
            FiltersApplier(*args).apply()

        if classification.shares:
            SharesApplier(*args).apply()

        GrantsApplier(*args).apply()

        logger.info("Export finished")
