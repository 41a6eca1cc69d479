# discord_service.py
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

import httpx

from alert_ledger import AlertKind
from deadline_evaluator import TrackedEntity

logger = logging.getLogger(__name__)

# Embed colours
BLURPLE = 0x7289DA
URGENT_RED = 0xFF0000
WARNING_ORANGE = 0xFFA500

MAX_COMMIT_MESSAGE_LENGTH = 256


# --- Delivery ---
def send_discord_message(payload: Dict[str, Any], webhook_url: str, timeout: float = 10.0) -> bool:
    """Posts a message to a Discord webhook. Returns True on a 2xx response."""
    try:
        response = httpx.post(webhook_url, json=payload, timeout=timeout)
        response.raise_for_status()
        return True
    except httpx.TimeoutException:
        logger.error(f"Timed out after {timeout}s sending Discord message")
        return False
    except httpx.HTTPStatusError as e:
        logger.error(f"Discord API error {e.response.status_code}: {e.response.text}")
        return False
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.error(f"Error sending Discord message: {e}")
        return False


# --- Push notifications ---
def truncate(text: str, limit: int = MAX_COMMIT_MESSAGE_LENGTH) -> str:
    if len(text) > limit:
        return text[:limit - 3] + '...'
    return text


def create_push_message(payload: Dict[str, Any], summary: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Creates a Discord embed for a GitHub push event, or None if nothing was pushed."""
    commits = payload.get('commits') or []
    if not commits:
        return None

    repository = payload['repository']['name']
    branch = payload.get('ref', '').replace('refs/heads/', '')
    pusher = (payload.get('pusher') or {}).get('name') or 'unknown'

    latest_commit = commits[-1]
    commit_author = (latest_commit.get('author') or {}).get('name') or pusher
    commit_sha = latest_commit['id'][:7]

    fields = [
        {
            'name': '📝 Commit Message',
            'value': truncate(latest_commit.get('message') or '') or '_(empty)_',
            'inline': False
        },
        {
            'name': '🔗 Commit',
            'value': f"[`{commit_sha}`]({latest_commit.get('url') or ''})",
            'inline': True
        },
        {
            'name': '🌿 Branch',
            'value': f"`{branch}`",
            'inline': True
        },
        {
            'name': '👤 Author',
            'value': commit_author,
            'inline': True
        }
    ]
    if summary:
        fields.insert(0, {
            'name': '🧠 Summary',
            'value': summary,
            'inline': False
        })

    return {
        'embeds': [{
            'title': f"📦 New Push to {repository}",
            'description': f"**{commit_author}** pushed to `{branch}`",
            'color': BLURPLE,
            'fields': fields,
            'footer': {
                'text': f"{len(commits)} commit{'s' if len(commits) > 1 else ''} pushed"
            },
            'timestamp': datetime.now(timezone.utc).isoformat()
        }]
    }


# --- Deadline alerts ---
def format_date(value: date) -> str:
    """Formats a date like 'June 4, 2024'."""
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def create_deadline_alert_message(entity: TrackedEntity, days_until: int, kind: AlertKind) -> Dict[str, Any]:
    """Creates a Discord embed reminding assignees of an upcoming deadline."""
    if kind == AlertKind.ONE_DAY:
        emoji = '🚨'
        color = URGENT_RED
        urgency = '**URGENT:** This project deadline is tomorrow! Please ensure all tasks are completed.'
    else:
        emoji = '⚠️'
        color = WARNING_ORANGE
        urgency = 'This project deadline is approaching. Please ensure all tasks are on track!'

    if entity.assigned_users:
        content = ' '.join(f"<@{user}>" for user in entity.assigned_users)
        assigned = ' '.join(f"@{user}" for user in entity.assigned_users)
    else:
        content = None
        assigned = 'No users assigned'

    return {
        'content': content,
        'embeds': [{
            'title': f"{emoji} Deadline Alert: {entity.name}",
            'description': urgency,
            'color': color,
            'fields': [
                {
                    'name': '📅 Deadline',
                    'value': f"{format_date(entity.deadline)} (in {days_until} day{'s' if days_until != 1 else ''})",
                    'inline': False
                },
                {
                    'name': '👥 Assigned To',
                    'value': assigned,
                    'inline': False
                }
            ],
            'footer': {
                'text': f"Project ID: {entity.id}"
            },
            'timestamp': datetime.now(timezone.utc).isoformat()
        }]
    }
