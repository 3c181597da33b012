"""
Pytest configuration for Task Workflow Tracker tests.

This module provides:
1. A fresh data directory per test
2. A membership directory with the principals used across the suite
3. A wired TrackerService and the DEMO application
"""

import pytest
from pathlib import Path

from tracker.membership import MembershipDirectory
from tracker.service import TrackerService


# -----------------------------------------------------------------------------
# Test Constants
# -----------------------------------------------------------------------------
DEMO = "DEMO"

DEMO_PERMITS = {
    "Open": "dev",
    "ToDo": "pm",
    "Doing": "dev",
    "Done": "qa",
}

MEMBERSHIPS = {
    "alice": ["dev"],
    "bob": ["pm"],
    "carol": ["qa"],
    "dave": ["dev", "pm", "qa"],
    "erin": [],
    "root": ["admin"],
}


# -----------------------------------------------------------------------------
# Common Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def data_dir(tmp_path) -> Path:
    """Empty data directory for the stores."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def directory():
    """Membership directory seeded with MEMBERSHIPS."""
    return MembershipDirectory(MEMBERSHIPS)


@pytest.fixture
def service(data_dir, directory):
    """Service wired to the temp data directory, no workflow override."""
    return TrackerService(data_dir=data_dir, oracle=directory)


@pytest.fixture
def engine(service):
    return service.engine


@pytest.fixture
def demo_app(service):
    """DEMO application with dev/pm/dev/qa permits."""
    return service.create_application(DEMO, description="Demo application", permits=DEMO_PERMITS)


@pytest.fixture
def demo_task(engine, demo_app):
    """DEMO_1 created by alice, in state Open."""
    return engine.create_task("alice", DEMO, "Fix bug")


def advance(engine, task_id: str, *targets: str) -> None:
    """Move a DEMO task through targets using dave, who holds every group."""
    for target in targets:
        engine.transition("dave", DEMO, task_id, target)
