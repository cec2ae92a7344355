from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class AccessProviderFeedback:
    access_provider: str
    external_id: Optional[str] = None
    actual_name: Optional[str] = None
    type: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"access_provider": self.access_provider}
        for key in ("external_id", "actual_name", "type"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.errors:
            data["errors"] = list(self.errors)
        if self.warnings:
            data["warnings"] = list(self.warnings)
        return data


class FeedbackHandler(ABC):
    """Receives exactly one feedback record per processed access provider."""

    @abstractmethod
    def add_feedback(self, feedback: AccessProviderFeedback) -> None:
        pass


class ListFeedbackHandler(FeedbackHandler):
    def __init__(self) -> None:
        self.feedback: List[AccessProviderFeedback] = []

    def add_feedback(self, feedback: AccessProviderFeedback) -> None:
        self.feedback.append(feedback)

    def for_access_provider(
        self, access_provider_id: str
    ) -> List[AccessProviderFeedback]:
        return [
            feedback
            for feedback in self.feedback
            if feedback.access_provider == access_provider_id
        ]

    def to_list(self) -> List[Dict[str, Any]]:
        return [feedback.to_dict() for feedback in self.feedback]
