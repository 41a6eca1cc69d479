# project_store.py
import logging
import threading
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from alert_ledger import AlertLedger
from deadline_evaluator import MalformedProjectError, parse_entity
from storage import DocumentStore, StorageError

logger = logging.getLogger(__name__)


class ProjectValidationError(ValueError):
    """Raised when a project sync payload is rejected."""


def project_key(record: Any) -> Optional[str]:
    """The id a record is tracked under in the alert ledger."""
    if not isinstance(record, dict) or record.get('id') in (None, ''):
        return None
    return str(record['id'])


def _stored_deadlines(projects: List[Any]) -> Dict[str, Optional[date]]:
    """Map ledger ids to parsed deadlines; unparseable deadlines map to None."""
    deadlines = {}
    for record in projects:
        key = project_key(record)
        if key is None:
            continue
        try:
            deadlines[key] = parse_entity(record).deadline
        except MalformedProjectError:
            deadlines[key] = None
    return deadlines


class ProjectStore:
    """The tracked project list, replaced wholesale by each sync.

    Stored layout: {"projects": [...], "lastUpdated": iso_timestamp}.

    `lock` guards every mutation together with its alert clean-up. The
    deadline coordinator holds it for a whole run.
    """

    def __init__(self, store: DocumentStore, ledger: Optional[AlertLedger] = None):
        self.store = store
        self.ledger = ledger
        self.lock = threading.RLock()

    def list_projects(self) -> Optional[List[Dict[str, Any]]]:
        """Return the raw project records, or None if projects were never synced."""
        try:
            if not self.store.exists():
                return None
            data = self.store.load()
        except StorageError as e:
            logger.error(f"Error reading projects: {e}")
            return None
        if data is None:
            return None
        return data.get('projects') or []

    def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        for project in self.list_projects() or []:
            if project_key(project) == str(project_id):
                return project
        return None

    def sync_projects(self, projects: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Replace the whole project list.

        Alert records are cleared for projects that were removed or whose
        deadline moved, so an old alert cannot suppress a new one.

        Raises:
            ProjectValidationError: if the payload is not a list of valid,
                uniquely identified projects
            StorageError: if the new list could not be written
        """
        if not isinstance(projects, list):
            raise ProjectValidationError("projects must be a list")

        incoming: Dict[str, date] = {}
        for project in projects:
            try:
                entity = parse_entity(project)
            except MalformedProjectError as e:
                raise ProjectValidationError(str(e)) from e
            if entity.id in incoming:
                raise ProjectValidationError(f"Duplicate project id: {entity.id}")
            incoming[entity.id] = entity.deadline

        with self.lock:
            previous = _stored_deadlines(self.list_projects() or [])
            self.store.save({
                'projects': projects,
                'lastUpdated': datetime.now(timezone.utc).isoformat(),
            })

            stale = [
                project_id for project_id, deadline in previous.items()
                if project_id not in incoming or incoming[project_id] != deadline
            ]
            if self.ledger:
                for project_id in stale:
                    self.ledger.clear(project_id)

        logger.info(f"Synced {len(projects)} project(s), cleared alerts for {len(stale)}")
        return {'synced': len(projects), 'alerts_cleared': stale}

    def delete_project(self, project_id: str) -> bool:
        """Remove one project and its alert records. Returns False if it did not exist."""
        key = str(project_id)
        with self.lock:
            data = self.store.load()
            if data is None:
                return False
            projects = data.get('projects') or []
            remaining = [p for p in projects if project_key(p) != key]
            if len(remaining) == len(projects):
                return False
            data['projects'] = remaining
            data['lastUpdated'] = datetime.now(timezone.utc).isoformat()
            self.store.save(data)

            if self.ledger:
                self.ledger.clear(key)

        logger.info(f"Deleted project: {key}")
        return True
