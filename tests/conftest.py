"""Pytest configuration and fixtures for revtracker tests."""

import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from revtracker.config.config_loader import ProjectConfigLoader
from revtracker.core.errors import TransientFetchError
from revtracker.core.models import ProjectConfig, ProjectRef, Revision
from revtracker.sources.base import RepoPoller
from revtracker.store.memory import InMemoryStore

# Configure logging
logging.basicConfig(level=logging.INFO)

BASE_TIME = datetime(2025, 10, 15, 10, 0, 0, tzinfo=timezone.utc)

BASIC_CONFIG = """
tasks:
  - name: compile
  - name: unit
    depends_on:
      - compile
buildvariants:
  - name: linux-64
    batchtime: 60
    tasks:
      - compile
      - unit
  - name: windows
    tasks:
      - compile
      - unit
"""


def make_revisions(count: int, prefix: str = "rev") -> List[Revision]:
    """``count`` revisions, most recent first, ``rev<count>`` ... ``rev1``"""
    return [
        Revision(
            revision=f"{prefix}{i}",
            author="Jane Doe",
            author_email="jane@example.com",
            message=f"commit {i}",
            create_time=BASE_TIME + timedelta(minutes=i),
        )
        for i in range(count, 0, -1)
    ]


class FakePoller(RepoPoller):
    """In-memory poller: a revision history plus per-revision configs and changed files"""

    def __init__(self, revisions: Optional[List[Revision]] = None,
                 default_config: Optional[ProjectConfig] = None):
        self.revisions: List[Revision] = list(revisions or [])  # most recent first
        self.default_config = default_config
        self.configs: Dict[str, Union[ProjectConfig, Exception]] = {}
        self.changed_files: Dict[str, Union[List[str], Exception]] = {}
        self.poll_error: Optional[Exception] = None
        self.config_requests: List[str] = []
        self.since_calls: List[tuple] = []
        self.recent_calls: List[int] = []
        self.closed = False

    async def get_remote_config(self, revision: str) -> ProjectConfig:
        self.config_requests.append(revision)
        result = self.configs.get(revision, self.default_config)
        if isinstance(result, Exception):
            raise result
        return result

    async def get_changed_files(self, revision: str) -> List[str]:
        result = self.changed_files.get(revision, ["src/main.py"])
        if isinstance(result, Exception):
            raise result
        return result

    async def get_revisions_since(self, since_revision: str, max_revisions: int) -> List[Revision]:
        self.since_calls.append((since_revision, max_revisions))
        if self.poll_error:
            raise self.poll_error
        found = []
        for revision in self.revisions:
            if revision.revision == since_revision:
                return found
            found.append(revision)
            if len(found) >= max_revisions:
                return found
        return found

    async def get_recent_revisions(self, max_revisions: int) -> List[Revision]:
        self.recent_calls.append(max_revisions)
        if self.poll_error:
            raise self.poll_error
        return self.revisions[:max_revisions]

    async def close(self):
        self.closed = True


@pytest.fixture
def basic_config() -> ProjectConfig:
    return ProjectConfigLoader.load_from_string(BASIC_CONFIG)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def project_ref() -> ProjectRef:
    return ProjectRef(
        identifier="mci",
        owner="evergreen-ci",
        repo="sample",
        branch="main",
        remote_path="ci.yml",
        batch_time=30,
    )


@pytest.fixture
def poller(basic_config) -> FakePoller:
    return FakePoller(revisions=make_revisions(3), default_config=basic_config)


@pytest.fixture
def transient_error() -> TransientFetchError:
    return TransientFetchError("github unreachable")
