"""
Failure classification for Pipeline Doctor.

Maps a normalized FailureEvent to the remediation action to apply. The
default classifier is a textual heuristic over the opaque diagnostic blob:
two substring checks layered over a default, evaluated in a fixed order
where each match overwrites the pending action (last match wins).

Classes:
    Classifier: Interface for pluggable classifiers
    TextHeuristicClassifier: Substring-based classifier

Functions:
    classify: Classify with the default heuristic
"""
import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from .exceptions import ClassificationError
from .models import FailureEvent, RemediationAction, SourceKind

logger = logging.getLogger(__name__)

TIMEOUT_MARKER = "TIMED_OUT"
RATE_LIMIT_MARKER = "rate exceeded"


def serialize_detail(detail: Any) -> str:
    """Render a diagnostic payload as text for substring matching."""
    if isinstance(detail, str):
        return detail
    return json.dumps(detail, default=str)


class Classifier(ABC):
    """Abstract base class for failure classifiers."""

    @abstractmethod
    def classify(self, event: FailureEvent) -> RemediationAction:
        """
        Choose the remediation action for a failure event.

        Args:
            event: Normalized failure event

        Returns:
            RemediationAction to apply
        """
        pass


class TextHeuristicClassifier(Classifier):
    """
    Substring heuristic over the serialized diagnostic blob.

    Build failures:
        1. RETRY by default
        2. BUMP_TIMEOUT_AND_RETRY if the text contains ``TIMED_OUT``
        3. BACKOFF_AND_RETRY if the lower-cased text contains ``rate exceeded``

    Pipeline stage failures always map to RETRY_STAGE.

    Example:
        >>> TextHeuristicClassifier().classify(event).value
        'BACKOFF_AND_RETRY'
    """

    def __init__(
        self,
        timeout_marker: str = TIMEOUT_MARKER,
        rate_limit_marker: str = RATE_LIMIT_MARKER
    ):
        self.timeout_marker = timeout_marker
        self.rate_limit_marker = rate_limit_marker.lower()

    def classify(self, event: FailureEvent) -> RemediationAction:
        if event.source_kind == SourceKind.PIPELINE_STAGE:
            return RemediationAction.RETRY_STAGE
        if event.source_kind != SourceKind.BUILD:
            raise ClassificationError(f"Unknown source kind: {event.source_kind!r}")

        raw = serialize_detail(event.raw_detail)

        action = RemediationAction.RETRY
        if self.timeout_marker in raw:
            action = RemediationAction.BUMP_TIMEOUT_AND_RETRY
        if self.rate_limit_marker in raw.lower():
            action = RemediationAction.BACKOFF_AND_RETRY

        logger.debug(f"Classified {event.identity} as {action.value}")
        return action


_default_classifier = TextHeuristicClassifier()


def classify(event: FailureEvent) -> RemediationAction:
    """Classify an event with the default text heuristic."""
    return _default_classifier.classify(event)
