# deadline_evaluator.py
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from alert_ledger import AlertKind

logger = logging.getLogger(__name__)


class MalformedProjectError(ValueError):
    """Raised when a project record is missing fields or has an unusable deadline."""


@dataclass
class TrackedEntity:
    """A project with a deadline that is subject to reminders."""

    id: str
    name: str
    deadline: date
    assigned_users: List[str] = field(default_factory=list)


@dataclass
class DeadlineAlert:
    """A project whose deadline is exactly `kind.days_before` days away."""

    entity: TrackedEntity
    days_until: int
    kind: AlertKind


def parse_deadline(value: Any) -> date:
    """Parse an ISO-8601 date or datetime into a calendar date (time of day dropped)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise MalformedProjectError(f"Invalid deadline: {value!r}")

    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace('Z', '+00:00')).date()
    except ValueError:
        raise MalformedProjectError(f"Invalid deadline: {value!r}") from None


def parse_entity(record: Dict[str, Any]) -> TrackedEntity:
    """Build a TrackedEntity from a stored project record."""
    if not isinstance(record, dict):
        raise MalformedProjectError(f"Project record must be an object, got {type(record).__name__}")

    missing = [key for key in ('id', 'name', 'deadline') if not record.get(key)]
    if missing:
        raise MalformedProjectError(f"Project record is missing: {', '.join(missing)}")

    assigned = record.get('assignedUsers') or []
    if not isinstance(assigned, list):
        raise MalformedProjectError(f"assignedUsers must be a list for project {record['id']}")

    return TrackedEntity(
        id=str(record['id']),
        name=str(record['name']),
        deadline=parse_deadline(record['deadline']),
        assigned_users=[str(user) for user in assigned],
    )


def days_until(deadline: date, today: date) -> int:
    return (deadline - today).days


def evaluate_deadlines(
    records: Iterable[Dict[str, Any]],
    today: date,
    kinds: Iterable[AlertKind] = AlertKind,
    on_error: Optional[Callable[[Dict[str, Any], Exception], None]] = None,
) -> Iterator[DeadlineAlert]:
    """
    Yield a DeadlineAlert for every project sitting exactly on an alert threshold.

    A malformed record is logged, passed to `on_error` and skipped; the rest
    of the records are still evaluated. Records with the same id are not
    merged.
    """
    kinds = list(kinds)

    for record in records:
        try:
            entity = parse_entity(record)
        except MalformedProjectError as e:
            logger.warning(f"Skipping malformed project {record!r}: {e}")
            if on_error:
                on_error(record, e)
            continue

        remaining = days_until(entity.deadline, today)
        logger.info(f"{entity.name}: {remaining} days until deadline")

        if remaining < 0:
            logger.info(f"Deadline has passed for {entity.name} ({entity.deadline})")
            continue

        for kind in kinds:
            if remaining == kind.days_before:
                yield DeadlineAlert(entity=entity, days_until=remaining, kind=kind)
