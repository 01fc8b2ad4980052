"""Test cases for VersionBuilder: idempotence, stubs, ignore checks and ordering."""

from unittest.mock import AsyncMock

import pytest

from revtracker.core.errors import (
    ConfigNotFoundError, OrderConsistencyError, ResponseReadError, TransientFetchError
)
from revtracker.core.models import ProjectConfig, Revision, TaskSpec, User, Version
from revtracker.tracker.version_builder import VersionBuilder

from conftest import make_revisions


@pytest.fixture
def builder(project_ref, store, poller):
    return VersionBuilder(project_ref, store, poller)


class TestBuild:

    @pytest.mark.asyncio
    async def test_full_version(self, builder, store):
        revision = make_revisions(1)[0]

        version = await builder.build(revision)

        assert version.id == "mci_rev1"
        assert version.order_number == 1
        assert version.errors == []
        assert version.config is not None
        assert version.author == "Jane Doe"
        assert version.branch == "main"
        assert [s.build_variant for s in version.build_variants] == ["linux-64", "windows"]
        assert len(version.build_ids) == 2

        stored = await store.find_version("mci_rev1")
        assert stored.build_ids == version.build_ids

    @pytest.mark.asyncio
    async def test_existing_version_is_returned_unchanged(self, builder, store, poller):
        revision = make_revisions(1)[0]
        first = await builder.build(revision)
        inserts = dict(store.stats)

        second = await builder.build(revision)

        assert second.id == first.id
        assert second.build_ids == first.build_ids
        assert store.stats == inserts
        assert poller.config_requests == ["rev1"]

    @pytest.mark.asyncio
    async def test_author_id_resolved_from_external_id(self, builder, store):
        await store.insert_user(User(id="jdoe", external_id=42))
        revision = Revision(revision="abc", author="Jane", author_external_id=42)

        version = await builder.build(revision)

        assert version.author_id == "jdoe"

    @pytest.mark.asyncio
    async def test_unknown_author(self, builder):
        version = await builder.build(Revision(revision="abc", author_external_id=7))
        assert version.author_id is None


class TestStubVersions:

    @pytest.mark.asyncio
    async def test_recoverable_config_error_stores_stub(self, builder, store, poller):
        poller.configs["rev1"] = ConfigNotFoundError("ci.yml not found")

        version = await builder.build(make_revisions(1)[0])

        assert version.is_stub
        assert "ci.yml not found" in version.errors[0]
        assert version.build_ids == []
        assert version.config is None
        assert store.stats['build_inserts'] == 0
        assert (await store.find_version(version.id)).errors == version.errors

    @pytest.mark.asyncio
    async def test_validation_errors_store_stub_without_builds(self, builder, store, poller):
        poller.configs["rev1"] = ProjectConfig()

        version = await builder.build(make_revisions(1)[0])

        assert version.errors == ["project must define at least one build variant"]
        assert version.config is not None
        assert version.build_ids == []
        assert store.stats['build_inserts'] == 0

    @pytest.mark.asyncio
    async def test_warnings_attached_to_expanded_version(self, builder, poller, basic_config):
        basic_config.tasks.append(TaskSpec(name="lint"))
        poller.configs["rev1"] = basic_config

        version = await builder.build(make_revisions(1)[0])

        assert version.errors == []
        assert version.warnings == ["task 'lint' is not run by any build variant"]
        assert len(version.build_ids) == 2

    @pytest.mark.asyncio
    async def test_one_bad_revision_does_not_block_the_batch(self, builder, store, poller):
        poller.configs["rev2"] = ConfigNotFoundError("missing")

        newest = await builder.store_revisions(make_revisions(3))

        assert newest.revision == "rev3"
        versions = await store.list_versions("mci")
        assert [(v.revision, v.is_stub) for v in versions] == [
            ("rev3", False), ("rev2", True), ("rev1", False)
        ]
        assert [v.order_number for v in versions] == [3, 2, 1]


class TestIgnoredVersions:

    @pytest.mark.asyncio
    async def test_only_ignored_files_changed(self, builder, poller, basic_config):
        basic_config.ignore = ["*.md", "docs/"]
        poller.changed_files["rev1"] = ["README.md", "docs/intro.rst"]

        version = await builder.build(make_revisions(1)[0])

        assert version.ignored is True
        assert len(version.build_ids) == 2

    @pytest.mark.asyncio
    async def test_other_files_changed(self, builder, poller, basic_config):
        basic_config.ignore = ["*.md"]
        poller.changed_files["rev1"] = ["README.md", "src/main.py"]

        version = await builder.build(make_revisions(1)[0])

        assert version.ignored is False

    @pytest.mark.asyncio
    async def test_changed_files_failure_degrades_to_not_ignored(self, builder, poller, basic_config):
        basic_config.ignore = ["*"]
        poller.changed_files["rev1"] = TransientFetchError("timeout")

        version = await builder.build(make_revisions(1)[0])

        assert version.ignored is False
        assert len(version.build_ids) == 2


class TestOrdering:

    @pytest.mark.asyncio
    async def test_batch_processed_oldest_first(self, builder, store):
        await builder.store_revisions(make_revisions(4))

        versions = await store.list_versions("mci")
        assert [(v.order_number, v.revision) for v in versions] == [
            (4, "rev4"), (3, "rev3"), (2, "rev2"), (1, "rev1")
        ]

    @pytest.mark.asyncio
    async def test_empty_batch(self, builder):
        assert await builder.store_revisions([]) is None

    @pytest.mark.asyncio
    async def test_fatal_error_stops_the_batch(self, builder, store, poller):
        poller.configs["rev2"] = ResponseReadError("connection reset")

        with pytest.raises(ResponseReadError):
            await builder.store_revisions(make_revisions(3))

        versions = await store.list_versions("mci")
        assert [v.revision for v in versions] == ["rev1"]
        assert "rev3" not in poller.config_requests

    @pytest.mark.asyncio
    async def test_order_number_not_above_latest(self, builder, store):
        await store.insert_version(Version(id="mci_old", project_id="mci", revision="old", order_number=5))

        with pytest.raises(OrderConsistencyError):
            await builder.build(Revision(revision="new"))

        assert await store.find_version_by_revision("mci", "new") is None

    @pytest.mark.asyncio
    async def test_revision_equal_to_latest(self, builder, store):
        await store.insert_version(Version(id="mci_same", project_id="mci", revision="same", order_number=1))

        with pytest.raises(OrderConsistencyError):
            await builder.sanity_check_order_number(2, "same")

    @pytest.mark.asyncio
    async def test_order_check_applies_to_stubs(self, builder, store, poller):
        await store.insert_version(Version(id="mci_old", project_id="mci", revision="old", order_number=5))
        poller.configs["new"] = ConfigNotFoundError("missing")

        with pytest.raises(OrderConsistencyError):
            await builder.build(Revision(revision="new"))


class TestNotificationHook:

    @pytest.mark.asyncio
    async def test_hook_called_after_expansion(self, project_ref, store, poller):
        hook = AsyncMock()
        builder = VersionBuilder(project_ref, store, poller, notification_hook=hook)

        version = await builder.build(make_revisions(1)[0])

        hook.version_created.assert_awaited_once_with(version, project_ref)

    @pytest.mark.asyncio
    async def test_hook_not_called_for_stubs(self, project_ref, store, poller):
        hook = AsyncMock()
        poller.configs["rev1"] = ConfigNotFoundError("missing")
        builder = VersionBuilder(project_ref, store, poller, notification_hook=hook)

        await builder.build(make_revisions(1)[0])

        hook.version_created.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_hook_failure_is_logged_only(self, project_ref, store, poller):
        hook = AsyncMock()
        hook.version_created.side_effect = RuntimeError("subscription store down")
        builder = VersionBuilder(project_ref, store, poller, notification_hook=hook)

        version = await builder.build(make_revisions(1)[0])

        assert await store.find_version(version.id) is not None
