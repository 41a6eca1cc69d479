"""
Pytest fixtures for the notifier.
"""

import os
import sys
import tempfile
from datetime import date
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

# Make the flat modules importable
root_path = Path(__file__).parent.parent
sys.path.insert(0, str(root_path))

# Set test environment before importing app
os.environ["DATA_DIR"] = tempfile.mkdtemp(prefix="notifier-test-")
os.environ["DISCORD_WEBHOOK_URL"] = "https://discord.test/api/webhooks/push"
os.environ["PROJECT_UPDATES_WEBHOOK_URL"] = "https://discord.test/api/webhooks/projects"
os.environ["GEMINI_API_KEY"] = ""
os.environ.pop("GITHUB_WEBHOOK_SECRET", None)

import app as app_module
from alert_ledger import AlertLedger
from deadline_scheduler import DeadlineCoordinator
from project_store import ProjectStore
from storage import DocumentStore, InMemoryStore, StorageError

WEBHOOK_URL = "https://discord.test/api/webhooks/projects"


class FailingStore(DocumentStore):
    """Store whose reads and/or writes always fail."""

    def __init__(self, fail_reads=True, fail_writes=True, document=None):
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes
        self.document = document if document is not None else {}

    def load(self):
        if self.fail_reads:
            raise StorageError("disk on fire")
        return dict(self.document)

    def save(self, document):
        if self.fail_writes:
            raise StorageError("disk full")
        self.document = dict(document)


@pytest.fixture
def launch_project() -> dict:
    """The project from the end-to-end scenario."""
    return {
        "id": "p1",
        "name": "Launch",
        "deadline": "2024-06-04",
        "assignedUsers": ["alice"],
    }


@pytest.fixture
def ledger() -> AlertLedger:
    return AlertLedger(InMemoryStore())


@pytest.fixture
def projects(ledger) -> ProjectStore:
    return ProjectStore(InMemoryStore(), ledger=ledger)


@pytest.fixture
def sender() -> MagicMock:
    """Discord sender that always succeeds."""
    return MagicMock(return_value=True)


@pytest.fixture
def coordinator(ledger, projects, sender) -> DeadlineCoordinator:
    return DeadlineCoordinator(
        ledger,
        projects,
        WEBHOOK_URL,
        send=sender,
        clock=lambda: date(2024, 6, 1),
    )


@pytest.fixture
def client(ledger, projects, coordinator):
    """
    Flask test client backed by in-memory stores.

    Mocks:
    - ledger, project store and coordinator (no files written)
    """
    app_module.app.config["TESTING"] = True
    with patch.object(app_module, "ledger", ledger), \
            patch.object(app_module, "project_store", projects), \
            patch.object(app_module, "coordinator", coordinator):
        yield app_module.app.test_client()
