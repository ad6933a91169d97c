"""Diagnostic events emitted by classifiers.

Events are optional: classifiers log them at DEBUG and, when a
:class:`ReportSink` is attached, append them there so distances and
thresholds can be joined back onto comparisons for reporting.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from sigverify.errors import MissingDistanceEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DistanceEvent:
    """One distance computed between a reference and another signature."""
    signer_id: Optional[str]
    questioned_signer_id: Optional[str]
    reference_id: str
    questioned_id: str
    distance: float


@dataclass(frozen=True)
class ClassificationDetails:
    """The (averaged) distance a decision was made on, with its thresholds."""
    signer_id: Optional[str]
    signature_id: str
    distance: float
    genuine_threshold: float
    forgery_threshold: float


class ReportSink:
    """Append-only, thread-safe collector of diagnostic events."""

    def __init__(self):
        self._events = []
        self._lock = threading.Lock()

    def emit(self, event):
        with self._lock:
            self._events.append(event)

    def __len__(self):
        return len(self._events)

    def events(self, kind=None):
        with self._lock:
            events = list(self._events)
        if kind is None:
            return events
        return [e for e in events if isinstance(e, kind)]

    def distances(self):
        """Map (reference_id, questioned_id) -> distance, first event wins."""
        result = {}
        for event in self.events(DistanceEvent):
            result.setdefault((event.reference_id, event.questioned_id), event.distance)
        return result

    def distance(self, reference_id, questioned_id):
        try:
            return self.distances()[(reference_id, questioned_id)]
        except KeyError:
            raise MissingDistanceEntry(reference_id, questioned_id) from None

    def details(self):
        """Map (signer_id, signature_id) -> latest ClassificationDetails."""
        return {(e.signer_id, e.signature_id): e for e in self.events(ClassificationDetails)}


def emit(sink, event):
    logger.debug("%s", event)
    if sink is not None:
        sink.emit(event)
