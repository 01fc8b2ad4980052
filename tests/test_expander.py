"""Test cases for BuildExpander and TaskIdTable."""

from datetime import timedelta

import pytest

from revtracker.config.config_loader import ProjectConfigLoader
from revtracker.core.errors import OrderConsistencyError, StoreError
from revtracker.core.models import BuildStatus, Version
from revtracker.store.memory import InMemoryStore
from revtracker.tracker.expander import BuildExpander, TaskIdTable

from conftest import BASE_TIME

CROSS_VARIANT_CONFIG = """
tasks:
  - name: compile
  - name: unit
    depends_on: [compile]
  - name: integration
    depends_on:
      - name: unit
        variant: linux
  - name: package
    depends_on:
      - name: "*"
        variant: "*"
buildvariants:
  - name: linux
    tasks: [compile, unit]
  - name: mac
    tasks: [compile, unit, integration]
  - name: release
    tasks: [package]
  - name: solaris
    disabled: true
    tasks: [compile]
"""


def new_version(revision: str = "rev2", order_number: int = 2) -> Version:
    return Version(id=f"mci_{revision}", project_id="mci", revision=revision, order_number=order_number)


class FailingVersionStore(InMemoryStore):
    async def insert_version(self, version):
        raise StoreError("write concern error")


class TestTaskIdTable:

    @pytest.fixture
    def config(self):
        return ProjectConfigLoader.load_from_string(CROSS_VARIANT_CONFIG)

    def test_ids_for_enabled_variants_only(self, config):
        table = TaskIdTable.build(config, new_version(), "tok")

        assert table.get("linux", "compile") == "mci_linux_compile_rev2_tok"
        assert table.get("solaris", "compile") is None
        assert len(table) == 6

    def test_same_variant_dependency(self, config):
        table = TaskIdTable.build(config, new_version(), "tok")
        assert table.resolve_dependency("linux", "unit", "compile", None) == [table.get("linux", "compile")]

    def test_cross_variant_dependency(self, config):
        table = TaskIdTable.build(config, new_version(), "tok")
        assert table.resolve_dependency("mac", "integration", "unit", "linux") == [table.get("linux", "unit")]

    def test_wildcard_dependency_excludes_self(self, config):
        table = TaskIdTable.build(config, new_version(), "tok")

        deps = table.resolve_dependency("release", "package", "*", "*")

        assert table.get("release", "package") not in deps
        assert len(deps) == 5

    def test_missing_dependency_dropped(self, config):
        table = TaskIdTable.build(config, new_version(), "tok")
        assert table.resolve_dependency("linux", "unit", "integration", None) == []


class TestExpand:

    @pytest.mark.asyncio
    async def test_creates_builds_and_tasks(self, project_ref, store, basic_config):
        version = new_version()
        expander = BuildExpander(project_ref, store)

        assert await expander.expand(version, basic_config, now=BASE_TIME) is True

        assert len(version.build_ids) == 2
        build = await store.find_build(version.build_ids[0])
        assert build.build_variant == "linux-64"
        assert build.version_id == version.id
        assert build.activated is False

        tasks = {t.display_name: t for t in await store.find_tasks_for_build(build.id)}
        assert set(tasks) == {"compile", "unit"}
        assert tasks["unit"].depends_on == [tasks["compile"].id]
        assert sorted(build.task_ids) == sorted(t.id for t in tasks.values())

        stored = await store.find_version(version.id)
        assert [s.build_id for s in stored.build_variants] == version.build_ids

    @pytest.mark.asyncio
    async def test_cross_variant_tasks_wired(self, project_ref, store):
        config = ProjectConfigLoader.load_from_string(CROSS_VARIANT_CONFIG)
        version = new_version()

        await BuildExpander(project_ref, store).expand(version, config, now=BASE_TIME)

        status = {s.build_variant: s for s in version.build_variants}
        linux_tasks = {t.display_name: t for t in await store.find_tasks_for_build(status["linux"].build_id)}
        mac_tasks = {t.display_name: t for t in await store.find_tasks_for_build(status["mac"].build_id)}
        release_tasks = await store.find_tasks_for_build(status["release"].build_id)

        assert mac_tasks["integration"].depends_on == [linux_tasks["unit"].id]
        assert len(release_tasks[0].depends_on) == 5

    @pytest.mark.asyncio
    async def test_disabled_variant_excluded(self, project_ref, store):
        config = ProjectConfigLoader.load_from_string(CROSS_VARIANT_CONFIG)
        version = new_version()

        await BuildExpander(project_ref, store).expand(version, config, now=BASE_TIME)

        assert version.get_build_status("solaris") is None
        assert [s.build_variant for s in version.build_variants] == ["linux", "mac", "release"]
        assert store.get_stats()['builds'] == 3
        assert store.get_stats()['tasks'] == 6


class TestActivationTime:

    @pytest.mark.asyncio
    async def test_no_prior_activation_is_immediate(self, project_ref, store, basic_config):
        version = new_version()
        await BuildExpander(project_ref, store).expand(version, basic_config, now=BASE_TIME)

        assert all(s.activate_at == BASE_TIME for s in version.build_variants)
        assert all(s.activated is False for s in version.build_variants)

    @pytest.mark.asyncio
    async def test_staggered_by_variant_batch_time(self, project_ref, store, basic_config):
        await store.insert_version(Version(
            id="mci_rev1", project_id="mci", revision="rev1", order_number=1,
            build_variants=[BuildStatus(build_variant="linux-64", activated=True, activate_at=BASE_TIME)],
        ))
        version = new_version()

        await BuildExpander(project_ref, store).expand(
            version, basic_config, now=BASE_TIME + timedelta(minutes=10)
        )

        assert version.get_build_status("linux-64").activate_at == BASE_TIME + timedelta(minutes=60)
        assert version.get_build_status("windows").activate_at == BASE_TIME + timedelta(minutes=10)

    @pytest.mark.asyncio
    async def test_project_batch_time_when_variant_has_none(self, project_ref, store, basic_config):
        await store.insert_version(Version(
            id="mci_rev1", project_id="mci", revision="rev1", order_number=1,
            build_variants=[BuildStatus(build_variant="windows", activated=True, activate_at=BASE_TIME)],
        ))
        version = new_version()

        await BuildExpander(project_ref, store).expand(version, basic_config, now=BASE_TIME)

        assert version.get_build_status("windows").activate_at == BASE_TIME + timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_unactivated_versions_ignored(self, project_ref, store, basic_config):
        await store.insert_version(Version(
            id="mci_rev1", project_id="mci", revision="rev1", order_number=1,
            build_variants=[BuildStatus(build_variant="linux-64", activated=True, activate_at=BASE_TIME)],
        ))
        await store.insert_version(Version(
            id="mci_rev2", project_id="mci", revision="rev2", order_number=2,
            build_variants=[BuildStatus(
                build_variant="linux-64", activated=False, activate_at=BASE_TIME + timedelta(minutes=60)
            )],
        ))
        version = new_version("rev3", 3)

        await BuildExpander(project_ref, store).expand(version, basic_config, now=BASE_TIME)

        assert version.get_build_status("linux-64").activate_at == BASE_TIME + timedelta(minutes=60)


class TestPersistenceFailures:

    @pytest.mark.asyncio
    async def test_rollback_on_version_insert_failure(self, project_ref, basic_config):
        store = FailingVersionStore()
        version = new_version()

        with pytest.raises(StoreError):
            await BuildExpander(project_ref, store).expand(version, basic_config, now=BASE_TIME)

        assert store.stats['build_inserts'] == 2
        assert store.stats['build_deletes'] == 2
        for build_id in version.build_ids:
            assert await store.find_build(build_id) is None
            assert await store.find_tasks_for_build(build_id) == []

    @pytest.mark.asyncio
    async def test_duplicate_version_is_success(self, project_ref, store, basic_config):
        await store.insert_version(new_version())
        version = new_version(order_number=3)

        assert await BuildExpander(project_ref, store).expand(version, basic_config, now=BASE_TIME) is False

        assert store.get_stats()['builds'] == 0
        assert store.get_stats()['tasks'] == 0
        assert (await store.find_version(version.id)).build_ids == []

    @pytest.mark.asyncio
    async def test_order_number_collision_is_fatal(self, project_ref, store, basic_config):
        await store.insert_version(new_version("other", 2))

        with pytest.raises(OrderConsistencyError):
            await BuildExpander(project_ref, store).expand(new_version(), basic_config, now=BASE_TIME)

        assert store.get_stats()['builds'] == 0
