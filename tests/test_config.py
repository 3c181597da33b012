"""
Tests for settings loading.
"""

from pathlib import Path

import pytest

from tracker import config
from tracker.config import Settings, get_settings, load_settings, reset_settings

ENV_KEYS = (
    "TRACKER_CONFIG",
    "TRACKER_DATA_DIR",
    "TRACKER_LOG_LEVEL",
    "TRACKER_ADMIN_PRINCIPALS",
    "TRACKER_ADMIN_GROUP",
    "TRACKER_ADMIN_OVERRIDE_WORKFLOW",
    "TRACKER_MEMBERSHIPS_FILE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


class TestLoadSettings:

    def test_defaults(self):
        settings = load_settings()
        assert settings.data_dir == Path("data/tracker")
        assert settings.log_level == "INFO"
        assert settings.admin_principals == ["admin"]
        assert settings.admin_group == "admin"
        assert settings.admin_override_workflow is False
        assert settings.memberships_file == Path("data/tracker/memberships.yaml")

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "tracker.yaml"
        path.write_text(
            "data_dir: /srv/tracker\n"
            "admin_principals: [ops, lead]\n"
            "admin_override_workflow: true\n"
            "log_level: debug\n"
        )
        settings = load_settings(path)
        assert settings.data_dir == Path("/srv/tracker")
        assert settings.admin_principals == ["ops", "lead"]
        assert settings.admin_override_workflow is True
        assert settings.log_level == "DEBUG"

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "tracker.yaml"
        path.write_text("admin_group: staff\n")
        monkeypatch.setenv("TRACKER_CONFIG", str(path))
        monkeypatch.setenv("TRACKER_ADMIN_GROUP", "root")
        monkeypatch.setenv("TRACKER_ADMIN_PRINCIPALS", "ops, lead ,")
        monkeypatch.setenv("TRACKER_ADMIN_OVERRIDE_WORKFLOW", "yes")

        settings = load_settings()
        assert settings.admin_group == "root"
        assert settings.admin_principals == ["ops", "lead"]
        assert settings.admin_override_workflow is True

    def test_memberships_file_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TRACKER_MEMBERSHIPS_FILE", str(tmp_path / "m.yaml"))
        assert load_settings().memberships_file == tmp_path / "m.yaml"

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "tracker.yaml"
        path.write_text("colour: blue\nadmin_group: staff\n")
        assert load_settings(path).admin_group == "staff"

    def test_missing_file_uses_defaults(self, tmp_path):
        assert load_settings(tmp_path / "absent.yaml") == Settings()

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "tracker.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_settings(path)


class TestCachedSettings:

    def test_cached_until_reset(self, monkeypatch):
        first = get_settings()
        assert get_settings() is first

        monkeypatch.setenv("TRACKER_LOG_LEVEL", "warning")
        assert get_settings().log_level == "INFO"

        reset_settings()
        assert get_settings().log_level == "WARNING"
        assert config._settings is not None
