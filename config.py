# config.py
import os
import logging

from dotenv import load_dotenv

load_dotenv()

# Discord webhook for the channel that receives GitHub push notifications
DISCORD_WEBHOOK_URL = os.environ.get('DISCORD_WEBHOOK_URL')

# Discord webhook for the project-updates channel (deadline alerts)
PROJECT_UPDATES_WEBHOOK_URL = os.environ.get('PROJECT_UPDATES_WEBHOOK_URL')

# Optional: verify X-Hub-Signature-256 on incoming GitHub webhooks
GITHUB_WEBHOOK_SECRET = os.environ.get('GITHUB_WEBHOOK_SECRET')

# Deadline alert settings
ALERT_CHECK_TIME = os.environ.get('ALERT_CHECK_TIME', '0 9 * * *')  # Daily at 9:00 AM
DISCORD_TIMEOUT_SECONDS = float(os.environ.get('DISCORD_TIMEOUT_SECONDS', '10'))

# Persisted state (alerts.json, projects.json)
DATA_DIR = os.environ.get('DATA_DIR', os.path.join(os.path.dirname(os.path.abspath(__file__)), 'data'))
ALERTS_FILE = os.path.join(DATA_DIR, 'alerts.json')
PROJECTS_FILE = os.path.join(DATA_DIR, 'projects.json')

# Validate configuration
if not DISCORD_WEBHOOK_URL:
    logging.warning("DISCORD_WEBHOOK_URL is not set - push notifications will not be sent")

if not PROJECT_UPDATES_WEBHOOK_URL:
    logging.warning("PROJECT_UPDATES_WEBHOOK_URL is not set - deadline alerts will not be sent")
