# deadline_scheduler.py
import logging
import threading
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from alert_ledger import AlertKind, AlertLedger
from deadline_evaluator import TrackedEntity, evaluate_deadlines
from discord_service import create_deadline_alert_message, send_discord_message
from project_store import ProjectStore

logger = logging.getLogger(__name__)

JOB_ID = 'deadline_check'

# Run statuses
COMPLETED = 'completed'
NO_PROJECTS = 'no_projects'
NOT_CONFIGURED = 'not_configured'
ALREADY_RUNNING = 'already_running'
ERROR = 'error'


class SchedulerConfigError(ValueError):
    """Raised when the deadline check schedule cannot be set up."""


class DeadlineCoordinator:
    """
    Runs deadline checks: evaluate projects, skip alerts already in the
    ledger, send the rest and record the ones Discord accepted.

    Scheduled and manual checks both go through check_deadlines(), and only
    one check runs at a time. A check that arrives while another is running
    is rejected rather than queued.
    """

    def __init__(
        self,
        ledger: AlertLedger,
        projects: ProjectStore,
        webhook_url: Optional[str],
        send: Callable[..., bool] = send_discord_message,
        formatter: Callable[[TrackedEntity, int, AlertKind], Dict[str, Any]] = create_deadline_alert_message,
        clock: Callable[[], date] = date.today,
        timeout: float = 10.0,
    ):
        self.ledger = ledger
        self.projects = projects
        self.webhook_url = webhook_url
        self.send = send
        self.formatter = formatter
        self.clock = clock
        self.timeout = timeout
        self._run_lock = threading.Lock()

    def is_running(self) -> bool:
        return self._run_lock.locked()

    def check_deadlines(self, today: Optional[date] = None, trigger: str = 'scheduled') -> Dict[str, Any]:
        """
        Run one full deadline check.

        Args:
            today: Override today's date (for testing)
            trigger: 'scheduled' or 'manual', for logging

        Returns:
            Summary dict with the run status, counts and per-alert outcomes
        """
        check_date = today or self.clock()
        result = {
            'status': COMPLETED,
            'trigger': trigger,
            'date': check_date.isoformat(),
            'projects_checked': 0,
            'alerts_due': 0,
            'alerts_sent': 0,
            'alerts_skipped': 0,
            'alerts_failed': 0,
            'errors': [],
            'outcomes': [],
        }

        if not self._run_lock.acquire(blocking=False):
            logger.warning(f"Deadline check ({trigger}) rejected: a run is already in progress")
            result['status'] = ALREADY_RUNNING
            return result

        try:
            logger.info(f"Checking project deadlines for {check_date} ({trigger})...")
            # Syncs and deletes wait for the run, so a moved deadline and its
            # cleared alerts are seen together
            with self.projects.lock:
                self._run(check_date, result)
        except Exception as e:
            logger.exception(f"Error checking deadlines: {e}")
            result['status'] = ERROR
            result['errors'].append(str(e))
        finally:
            self._run_lock.release()

        logger.info(
            f"Deadline check {result['status']}. Sent {result['alerts_sent']} alert(s), "
            f"skipped {result['alerts_skipped']}, failed {result['alerts_failed']}."
        )
        return result

    def trigger_manual_check(self) -> Dict[str, Any]:
        logger.info("Manual deadline check triggered")
        return self.check_deadlines(trigger='manual')

    def clear_project_alerts(self, project_id: str) -> bool:
        return self.ledger.clear(project_id)

    def get_all_alerts(self) -> Dict[str, Dict[str, str]]:
        return self.ledger.all()

    def _run(self, check_date: date, result: Dict[str, Any]) -> None:
        if not self.webhook_url:
            logger.error("PROJECT_UPDATES_WEBHOOK_URL not configured, skipping deadline check")
            result['status'] = NOT_CONFIGURED
            result['errors'].append('PROJECT_UPDATES_WEBHOOK_URL not configured')
            return

        projects = self.projects.list_projects()
        if projects is None:
            logger.info("No projects file found. Waiting for project data sync.")
            result['status'] = NO_PROJECTS
            return
        if not projects:
            logger.info("No projects to check.")
            result['status'] = NO_PROJECTS
            return

        logger.info(f"Found {len(projects)} project(s) to check.")
        result['projects_checked'] = len(projects)

        errors: List[str] = result['errors']

        def on_error(record, error):
            project_id = record.get('id') if isinstance(record, dict) else None
            errors.append(f"{project_id or 'unknown project'}: {error}")

        for alert in evaluate_deadlines(projects, check_date, on_error=on_error):
            result['alerts_due'] += 1
            try:
                outcome = self._process(alert.entity, alert.days_until, alert.kind)
            except Exception as e:
                logger.exception(f"Error processing {alert.kind.value} alert for {alert.entity.name}: {e}")
                errors.append(f"{alert.entity.id}: {e}")
                outcome = 'error'
            result['outcomes'].append({
                'project_id': alert.entity.id,
                'project_name': alert.entity.name,
                'kind': alert.kind.value,
                'days_until': alert.days_until,
                'outcome': outcome,
            })
            if outcome == 'already_sent':
                result['alerts_skipped'] += 1
            elif outcome in ('failed', 'error'):
                result['alerts_failed'] += 1
            else:
                result['alerts_sent'] += 1

    def _process(self, entity: TrackedEntity, days_until: int, kind: AlertKind) -> str:
        """Check, send and record one alert. Returns the outcome name."""
        if self.ledger.has_been_sent(entity.id, kind):
            logger.info(f"{kind.value} alert already sent for {entity.name}")
            return 'already_sent'

        logger.info(f"Sending {kind.value} alert for {entity.name}...")
        try:
            message = self.formatter(entity, days_until, kind)
            success = self.send(message, self.webhook_url, timeout=self.timeout)
        except Exception as e:
            logger.exception(f"Error sending {kind.value} alert for {entity.name}: {e}")
            success = False

        if not success:
            logger.error(f"Failed to send {kind.value} alert for {entity.name}")
            return 'failed'

        if not self.ledger.record(entity.id, kind):
            logger.error(f"{kind.value} alert for {entity.name} was sent but not recorded; it may be resent")
            return 'unrecorded'

        logger.info(f"{kind.value} alert sent successfully for {entity.name}")
        return 'sent'


class DeadlineScheduler:
    """Runs the coordinator's deadline check on a cron schedule."""

    def __init__(self, coordinator: DeadlineCoordinator, cron_expression: str = '0 9 * * *',
                 scheduler: Optional[BackgroundScheduler] = None):
        self.coordinator = coordinator
        self.cron_expression = cron_expression
        self.scheduler = scheduler or BackgroundScheduler()

    def start(self) -> None:
        try:
            trigger = CronTrigger.from_crontab(self.cron_expression)
        except ValueError as e:
            raise SchedulerConfigError(f"Invalid ALERT_CHECK_TIME {self.cron_expression!r}: {e}") from e

        self.scheduler.add_job(
            self.coordinator.check_deadlines,
            trigger,
            kwargs={'trigger': 'scheduled'},
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        if not self.scheduler.running:
            self.scheduler.start()
        logger.info(f"Deadline alert scheduler running with schedule: {self.cron_expression}")

    def next_run_time(self):
        job = self.scheduler.get_job(JOB_ID)
        return getattr(job, 'next_run_time', None)

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Deadline alert scheduler stopped")
