# alert_ledger.py
import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Dict

from storage import DocumentStore, StorageError

logger = logging.getLogger(__name__)


class AlertKind(Enum):
    """Deadline reminder thresholds. The value is the key stored in the ledger."""

    THREE_DAY = '3-day'
    ONE_DAY = '1-day'

    @property
    def days_before(self) -> int:
        return _DAYS_BEFORE[self]


_DAYS_BEFORE = {
    AlertKind.THREE_DAY: 3,
    AlertKind.ONE_DAY: 1,
}


class AlertLedger:
    """Durable record of which deadline alerts have been sent per project.

    Layout of the stored document: {project_id: {kind: iso_timestamp}}.
    Nothing is cached between calls; each operation reads the whole document
    and mutating operations write it back, all under one lock.
    """

    def __init__(self, store: DocumentStore):
        self.store = store
        self._lock = threading.RLock()

    def _read(self) -> Dict[str, Dict[str, str]]:
        data = self.store.load()
        if data is None:
            data = {}
            self.store.save(data)
        return data

    def has_been_sent(self, project_id: str, kind: AlertKind) -> bool:
        """Check whether an alert of this kind was already sent for the project."""
        with self._lock:
            try:
                data = self._read()
            except StorageError as e:
                # Never assume already-sent: a duplicate beats a silent miss
                logger.error(f"Error reading alert ledger, treating {kind.value} alert for {project_id} as unsent: {e}")
                return False
        sent = data.get(project_id)
        if sent is not None and not isinstance(sent, dict):
            logger.warning(f"Ignoring malformed alert record for project {project_id}: {sent!r}")
            return False
        return bool(sent and sent.get(kind.value))

    def record(self, project_id: str, kind: AlertKind) -> bool:
        """Mark the alert as sent now. Returns False if the write did not persist."""
        with self._lock:
            try:
                data = self._read()
                sent = data.get(project_id)
                if not isinstance(sent, dict):
                    sent = data[project_id] = {}
                sent[kind.value] = datetime.now(timezone.utc).isoformat()
                self.store.save(data)
            except StorageError as e:
                logger.error(f"Error recording {kind.value} alert for project {project_id}: {e}")
                return False
        logger.info(f"Recorded {kind.value} alert for project: {project_id}")
        return True

    def clear(self, project_id: str) -> bool:
        """Forget every alert sent for the project. Unknown ids are a no-op."""
        with self._lock:
            try:
                data = self._read()
                if project_id not in data:
                    return True
                del data[project_id]
                self.store.save(data)
            except StorageError as e:
                logger.error(f"Error clearing alerts for project {project_id}: {e}")
                return False
        logger.info(f"Cleared alerts for project: {project_id}")
        return True

    def all(self) -> Dict[str, Dict[str, str]]:
        with self._lock:
            try:
                return self._read()
            except StorageError as e:
                logger.error(f"Error reading alert ledger: {e}")
                return {}
