# app.py
import os
import hmac
import hashlib
import logging
from typing import Dict, Any, Optional

from flask import Flask, request, abort, jsonify

import config
import gemini_service
from alert_ledger import AlertLedger
from deadline_scheduler import (
    ALREADY_RUNNING,
    DeadlineCoordinator,
    DeadlineScheduler,
    SchedulerConfigError,
)
from discord_service import create_push_message, send_discord_message
from project_store import ProjectStore, ProjectValidationError
from storage import JsonFileStore, StorageError

# --- Initialization ---
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Persisted state
ledger = AlertLedger(JsonFileStore(config.ALERTS_FILE))
project_store = ProjectStore(JsonFileStore(config.PROJECTS_FILE), ledger=ledger)

# Deadline alerts: one coordinator shared by the cron job and manual checks
coordinator = DeadlineCoordinator(
    ledger,
    project_store,
    config.PROJECT_UPDATES_WEBHOOK_URL,
    timeout=config.DISCORD_TIMEOUT_SECONDS,
)
deadline_scheduler = DeadlineScheduler(coordinator, config.ALERT_CHECK_TIME)


def start_scheduler() -> bool:
    """Starts the daily deadline check. A bad schedule is logged, not fatal."""
    try:
        deadline_scheduler.start()
    except SchedulerConfigError as e:
        logger.error(f"Deadline alerts disabled: {e}")
        return False
    return True


# --- Security ---
def verify_github_signature(payload_body: bytes, signature_header: Optional[str], secret: bytes) -> bool:
    """Verify that the payload was sent from GitHub by validating the signature."""
    if not signature_header:
        logger.warning("No X-Hub-Signature-256 header on request.")
        return False

    if not signature_header.startswith('sha256='):
        logger.warning("Invalid signature format")
        return False

    hash_object = hmac.new(secret, msg=payload_body, digestmod=hashlib.sha256)
    expected_signature = "sha256=" + hash_object.hexdigest()

    if not hmac.compare_digest(expected_signature, signature_header):
        logger.warning("Request signature does not match.")
        return False

    return True


def validate_push_payload(payload: Dict[str, Any]) -> bool:
    """Validate the structure of a push webhook payload."""
    if not isinstance(payload, dict):
        return False

    repository = payload.get('repository')
    if not isinstance(repository, dict) or 'name' not in repository:
        return False

    if not isinstance(payload.get('ref'), str):
        return False

    commits = payload.get('commits', [])
    if not isinstance(commits, list):
        return False

    for commit in commits:
        if not isinstance(commit, dict) or not isinstance(commit.get('id'), str):
            return False

    return True


# --- Webhook Handler ---
@app.route('/', methods=['GET'])
def health():
    next_run = deadline_scheduler.next_run_time()
    return jsonify({
        'status': 'GitHub to Discord webhook server is running',
        'deadline_check_running': coordinator.is_running(),
        'next_deadline_check': next_run.isoformat() if next_run else None,
    })


@app.route('/webhook', methods=['POST'])
def github_webhook():
    # 1. Verify the signature (only when a secret is configured)
    if config.GITHUB_WEBHOOK_SECRET:
        signature = request.headers.get('X-Hub-Signature-256')
        if not verify_github_signature(request.get_data(), signature, config.GITHUB_WEBHOOK_SECRET.encode('utf-8')):
            logger.warning(f"Invalid signature from {request.remote_addr}")
            abort(400, 'Invalid signature.')

    # 2. Check the event type
    event_type = request.headers.get('X-GitHub-Event')
    if event_type != 'push':
        logger.info(f"Received non-push event: {event_type}")
        return jsonify({'message': 'Event ignored (not a push)'}), 200

    # 3. Validate the payload
    payload = request.get_json(silent=True)
    if not payload:
        logger.warning("Empty payload received")
        abort(400, 'Empty payload')

    if not validate_push_payload(payload):
        logger.warning("Invalid payload structure")
        abort(400, 'Invalid payload structure')

    # 4. Relay to Discord
    return handle_push_event(payload)


def handle_push_event(payload):
    """Formats a push event and sends it to the Discord channel."""
    commits = payload.get('commits') or []
    summary = gemini_service.summarize_push(commits) if len(commits) > 1 else None
    message = create_push_message(payload, summary)

    if message is None:
        logger.info("No commits in push event")
        return jsonify({'message': 'No commits to report'}), 200

    if not config.DISCORD_WEBHOOK_URL:
        logger.error("DISCORD_WEBHOOK_URL not configured")
        return jsonify({'error': 'Discord webhook not configured'}), 500

    if not send_discord_message(message, config.DISCORD_WEBHOOK_URL, timeout=config.DISCORD_TIMEOUT_SECONDS):
        return jsonify({'error': 'Failed to send Discord message'}), 500

    branch = payload['ref'].replace('refs/heads/', '')
    logger.info(f"Push notification sent for {payload['repository']['name']}/{branch}")
    return jsonify({'message': 'Notification sent successfully'}), 200


# --- Projects ---
@app.route('/projects', methods=['GET'])
def list_projects():
    projects = project_store.list_projects()
    return jsonify({'projects': projects or [], 'synced': projects is not None})


@app.route('/projects/sync', methods=['POST'])
def sync_projects():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or 'projects' not in payload:
        abort(400, 'Expected a JSON body with a "projects" list')

    try:
        result = project_store.sync_projects(payload['projects'])
    except ProjectValidationError as e:
        logger.warning(f"Rejected project sync: {e}")
        return jsonify({'error': str(e)}), 400
    except StorageError as e:
        logger.error(f"Error saving projects: {e}")
        return jsonify({'error': 'Failed to save projects'}), 500

    return jsonify({'message': 'Projects synced successfully', **result}), 200


@app.route('/projects/<project_id>', methods=['DELETE'])
def delete_project(project_id):
    try:
        deleted = project_store.delete_project(project_id)
    except StorageError as e:
        logger.error(f"Error deleting project {project_id}: {e}")
        return jsonify({'error': 'Failed to delete project'}), 500

    if not deleted:
        abort(404, 'Project not found')
    return jsonify({'message': f'Project {project_id} deleted'}), 200


# --- Deadline Alerts ---
@app.route('/deadlines/check', methods=['POST'])
def check_deadlines():
    result = coordinator.trigger_manual_check()
    status_code = 409 if result['status'] == ALREADY_RUNNING else 200
    return jsonify(result), status_code


@app.route('/alerts', methods=['GET'])
def get_alerts():
    return jsonify(coordinator.get_all_alerts())


@app.route('/alerts/<project_id>', methods=['DELETE'])
def clear_alerts(project_id):
    if not coordinator.clear_project_alerts(project_id):
        return jsonify({'error': 'Failed to clear alerts'}), 500
    return jsonify({'message': f'Alerts cleared for project {project_id}'}), 200


if __name__ == '__main__':
    logger.info("Starting GitHub to Discord Notifier...")

    start_scheduler()

    # Get configuration from environment
    port = int(os.environ.get('PORT', 3000))
    debug_mode = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'

    if debug_mode:
        logger.warning("Running in debug mode - DO NOT USE IN PRODUCTION")

    # The reloader would start a second scheduler in the child process
    app.run(host='0.0.0.0', port=port, debug=debug_mode, use_reloader=False)
