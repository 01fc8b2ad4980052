"""Test cases for the revtracker command-line interface."""

from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from revtracker.cli.tracker_cli import cli
from revtracker.core.errors import OrderConsistencyError, StoreError
from revtracker.store.memory import InMemoryStore

from conftest import FakePoller, make_revisions


@pytest.fixture
def config_files(tmp_path):
    projects_path = tmp_path / "projects.yaml"
    projects_path.write_text(yaml.safe_dump({
        'projects': {
            'mci': {'owner': 'evergreen-ci', 'repo': 'sample', 'remote_path': 'ci.yml'},
            'archived': {'owner': 'example', 'repo': 'archived', 'remote_path': 'ci.yml', 'enabled': False},
        }
    }))
    global_path = tmp_path / "global_config.yaml"
    global_path.write_text(yaml.safe_dump({
        'store': {'type': 'memory'},
        'projects': {'projects_path': str(projects_path)},
    }))
    return ['--global-config', str(global_path)]


def invoke(args):
    return CliRunner().invoke(cli, args)


class TestTrackerCLI:

    def test_track(self, config_files, basic_config):
        poller = FakePoller(make_revisions(3), default_config=basic_config)
        with patch("revtracker.tracker.runner.poller_for_project", return_value=poller):
            result = invoke(config_files + ['track', '--project', 'mci'])

        assert result.exit_code == 0, result.output
        assert "Tracked mci" in result.output
        assert "(order 3)" in result.output
        assert poller.closed

    def test_track_failure_exits_nonzero(self, config_files, basic_config):
        poller = FakePoller(make_revisions(1), default_config=basic_config)

        async def fail(*args, **kwargs):
            raise OrderConsistencyError("order numbers out of sequence")
        poller.get_recent_revisions = fail

        with patch("revtracker.tracker.runner.poller_for_project", return_value=poller):
            result = invoke(config_files + ['track', '--project', 'mci'])

        assert result.exit_code == 1
        assert "order numbers out of sequence" in result.output

    def test_store_failure_reported_without_traceback(self, config_files, basic_config):
        poller = FakePoller(make_revisions(1), default_config=basic_config)

        with patch("revtracker.tracker.runner.poller_for_project", return_value=poller), \
                patch.object(InMemoryStore, "insert_build", side_effect=StoreError("failed to insert build: down")):
            result = invoke(config_files + ['track', '--project', 'mci'])

        assert result.exit_code == 1
        assert "failed to insert build: down" in result.output
        assert not isinstance(result.exception, StoreError)

    def test_track_all(self, config_files, basic_config):
        with patch("revtracker.tracker.runner.poller_for_project",
                   side_effect=lambda ref, cfg: FakePoller(make_revisions(1), default_config=basic_config)):
            result = invoke(config_files + ['track-all'])

        assert result.exit_code == 0, result.output
        assert "mci: success" in result.output
        assert "archived" not in result.output

    def test_unknown_project(self, config_files):
        result = invoke(config_files + ['activate', '--project', 'missing'])

        assert result.exit_code == 1
        assert "Project 'missing' not found" in result.output

    def test_activate_empty_store(self, config_files):
        result = invoke(config_files + ['activate', '--project', 'mci'])

        assert result.exit_code == 0, result.output
        assert "No builds due for activation in mci" in result.output

    def test_versions_empty_store(self, config_files):
        result = invoke(config_files + ['versions', '--project', 'mci'])

        assert result.exit_code == 0, result.output
        assert "No versions stored for mci" in result.output
