"""Test cases for core models: ids, ignore rules, batch times and serialization."""

from datetime import datetime, timezone

from revtracker.core.enums import NotificationPreference
from revtracker.core.models import (
    BuildStatus, BuildVariantSpec, ProjectConfig, ProjectRef, User, Version, clean_name
)


class TestCleanName:

    def test_replaces_unsafe_characters(self):
        assert clean_name("mci_linux-64_abc.def") == "mci_linux_64_abc_def"

    def test_keeps_safe_characters(self):
        assert clean_name("Project_123") == "Project_123"


class TestIgnoreRules:

    def test_no_patterns_never_ignores(self):
        config = ProjectConfig()
        assert config.ignores_all_files(["README.md"]) is False

    def test_no_changed_files_is_not_ignored(self):
        config = ProjectConfig(ignore=["*.md"])
        assert config.ignores_all_files([]) is False

    def test_all_files_match(self):
        config = ProjectConfig(ignore=["*.md", "docs/"])
        assert config.ignores_all_files(["README.md", "docs/guide/intro.txt", "sub/NOTES.md"]) is True

    def test_one_file_outside_patterns(self):
        config = ProjectConfig(ignore=["*.md"])
        assert config.ignores_all_files(["README.md", "src/main.py"]) is False

    def test_negated_pattern_reincludes(self):
        config = ProjectConfig(ignore=["docs/", "!docs/api.yml"])
        assert config.ignores_all_files(["docs/intro.md"]) is True
        assert config.ignores_all_files(["docs/intro.md", "docs/api.yml"]) is False

    def test_path_pattern(self):
        config = ProjectConfig(ignore=["scripts/*.sh"])
        assert config.ignores_all_files(["scripts/release.sh"]) is True
        assert config.ignores_all_files(["tools/scripts/release.sh"]) is False

    def test_double_star_matches_at_any_depth(self):
        config = ProjectConfig(ignore=["**/README.md"])
        assert config.ignores_all_files(["README.md"]) is True
        assert config.ignores_all_files(["docs/guide/README.md"]) is True

    def test_single_star_does_not_cross_directories(self):
        config = ProjectConfig(ignore=["docs/*.md"])
        assert config.ignores_all_files(["docs/intro.md"]) is True
        assert config.ignores_all_files(["docs/api/src/main.md"]) is False


class TestBatchTime:

    def test_variant_override_wins(self):
        ref = ProjectRef(identifier="p", batch_time=30)
        assert ref.get_batch_time(BuildVariantSpec(name="v", batch_time=5), 90) == 5

    def test_variant_zero_override_is_respected(self):
        ref = ProjectRef(identifier="p", batch_time=30)
        assert ref.get_batch_time(BuildVariantSpec(name="v", batch_time=0)) == 0

    def test_project_setting_before_config_default(self):
        ref = ProjectRef(identifier="p", batch_time=30)
        assert ref.get_batch_time(BuildVariantSpec(name="v"), 90) == 30

    def test_config_default(self):
        ref = ProjectRef(identifier="p")
        assert ref.get_batch_time(BuildVariantSpec(name="v"), 90) == 90
        assert ref.get_batch_time(BuildVariantSpec(name="v")) == 0


class TestProjectRef:

    def test_repotracker_error_from_dict(self):
        ref = ProjectRef(identifier="p", repotracker_error={"exists": True, "invalid_revision": "abc"})
        assert ref.has_repotracker_error() is True
        assert ref.repotracker_error.invalid_revision == "abc"

    def test_no_repotracker_error(self):
        assert ProjectRef(identifier="p").has_repotracker_error() is False
        assert ProjectRef(identifier="p", repotracker_error={"exists": False}).has_repotracker_error() is False


class TestVersion:

    def test_stub_when_errors_present(self):
        version = Version(id="v", project_id="p", revision="r", order_number=1, errors=["bad"])
        assert version.is_stub is True
        assert Version(id="v", project_id="p", revision="r", order_number=1).is_stub is False

    def test_dict_keeps_build_statuses_and_times(self):
        activate_at = datetime(2025, 10, 15, 11, 0, tzinfo=timezone.utc)
        version = Version(
            id="p_r", project_id="p", revision="r", order_number=3,
            build_variants=[BuildStatus(build_variant="linux", activate_at=activate_at, build_id="b1")],
        )

        data = version.to_dict()
        assert data['build_variants'][0]['activate_at'] == activate_at.isoformat()

        restored = Version.from_dict(data)
        status = restored.get_build_status("linux")
        assert status.activate_at == activate_at
        assert status.build_id == "b1"
        assert restored.get_build_status("windows") is None


class TestUser:

    def test_known_preference_becomes_enum(self):
        user = User(id="u", build_break_preference="slack")
        assert user.build_break_preference == NotificationPreference.SLACK
        assert user.to_dict()['build_break_preference'] == "slack"

    def test_empty_preference_is_none(self):
        assert User(id="u", build_break_preference="").build_break_preference is None

    def test_unknown_preference_kept(self):
        assert User(id="u", build_break_preference="pager").build_break_preference == "pager"
