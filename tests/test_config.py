"""
Tests for configuration — execsafe.yml loading and platform flags.
"""

import json
import textwrap
from pathlib import Path

import pytest
from pydantic import ValidationError

from execsafe.core.config.flags import (
    FLAG_NAMES,
    FlagStore,
    PlatformFlags,
    parse_flag_value,
)
from execsafe.core.config.loader import (
    ConfigError,
    Settings,
    find_settings_file,
    load_settings,
)

# ── Settings ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _no_env_config(monkeypatch):
    monkeypatch.delenv("EXECSAFE_CONFIG", raising=False)


class TestLoadSettings:
    def test_no_file_gives_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        settings = load_settings()
        assert settings == Settings()
        assert settings.source_path is None

    def test_explicit_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Config file not found"):
            load_settings(tmp_path / "missing.yml")

    def test_env_var_path(self, tmp_path, monkeypatch):
        config = tmp_path / "custom.yml"
        config.write_text("autonomy_mode: safe\n")
        monkeypatch.setenv("EXECSAFE_CONFIG", str(config))
        assert load_settings().autonomy_mode == "safe"

    def test_full_file(self, tmp_path):
        config = tmp_path / "execsafe.yml"
        config.write_text(textwrap.dedent("""\
            allowed_roots: [/srv/app]
            autonomy_mode: guided
            trust_policy: strict_verified
            max_install_workers: 3
            flags:
              container_execution: true
            capabilities:
              - id: Widget
                binary: widget
                aliases: [widget-cli]
                install_recipes:
                  - id: apt-widget
                    method: apt
                    command: apt-get install -y widget
                    verified: true
            mcp_servers:
              - name: docs
                command: docs-server
        """))

        settings = load_settings(config)

        assert settings.allowed_roots == ["/srv/app"]
        assert settings.trust_policy == "strict_verified"
        assert settings.max_install_workers == 3
        assert settings.flags == {"container_execution": True}
        assert settings.capabilities[0].id == "widget"
        assert settings.capabilities[0].install_recipes[0].verified
        assert settings.mcp_servers[0]["name"] == "docs"
        assert settings.source_path == str(config)

    def test_wrapped_under_execsafe_key(self, tmp_path):
        config = tmp_path / "execsafe.yml"
        config.write_text("execsafe:\n  autonomy_mode: unrestricted\n")
        assert load_settings(config).autonomy_mode == "unrestricted"

    def test_empty_file(self, tmp_path):
        config = tmp_path / "execsafe.yml"
        config.write_text("")
        assert load_settings(config).source_path == str(config)

    def test_invalid_yaml(self, tmp_path):
        config = tmp_path / "execsafe.yml"
        config.write_text("allowed_roots: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings(config)

    def test_not_a_mapping(self, tmp_path):
        config = tmp_path / "execsafe.yml"
        config.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="Expected a YAML mapping"):
            load_settings(config)

    def test_validation_error(self, tmp_path):
        config = tmp_path / "execsafe.yml"
        config.write_text("max_install_workers: 0\n")
        with pytest.raises(ConfigError, match="Invalid settings"):
            load_settings(config)

    def test_unknown_trust_policy(self, tmp_path):
        config = tmp_path / "execsafe.yml"
        config.write_text("trust_policy: anything_goes\n")
        with pytest.raises(ConfigError):
            load_settings(config)


class TestFindSettingsFile:
    def test_walks_up(self, tmp_path):
        (tmp_path / "execsafe.yml").write_text("{}\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_settings_file(nested) == (tmp_path / "execsafe.yml").resolve()

    def test_not_found(self, tmp_path):
        nested = tmp_path / "empty"
        nested.mkdir()
        found = find_settings_file(nested)
        assert found is None or not str(found).startswith(str(tmp_path))


class TestStateDir:
    def test_explicit(self, tmp_path):
        assert Settings(state_dir=str(tmp_path / "s")).resolved_state_dir() == tmp_path / "s"

    def test_beside_config_file(self, tmp_path):
        settings = Settings(source_path=str(tmp_path / "execsafe.yml"))
        assert settings.resolved_state_dir() == tmp_path / ".state"

    def test_user_default(self):
        assert Settings().resolved_state_dir() == Path("~/.execsafe").expanduser()


# ── Flags ────────────────────────────────────────────────────────────


class TestPlatformFlags:
    def test_defaults(self):
        flags = PlatformFlags()
        assert flags.enabled
        assert flags.cohort == "internal"
        assert flags.lifecycle_events
        assert flags.install_orchestrator
        assert flags.checkpoint_rollback
        assert not flags.mcp_runtime_manager
        assert not flags.container_execution
        assert not flags.containerize_mcp_servers
        assert not flags.containerize_installs

    def test_flag_names(self):
        assert "container_execution" in FLAG_NAMES
        assert len(FLAG_NAMES) == 9


class TestParseFlagValue:
    @pytest.mark.parametrize("raw,expected", [
        ("on", True), ("TRUE", True), ("1", True), ("yes", True),
        ("off", False), ("false", False), ("0", False), ("No", False),
    ])
    def test_booleans(self, raw, expected):
        assert parse_flag_value("container_execution", raw) is expected

    def test_cohort(self):
        assert parse_flag_value("cohort", " Beta ") == "beta"

    def test_unknown_flag(self):
        with pytest.raises(KeyError):
            parse_flag_value("warp_drive", "on")

    def test_bad_boolean(self):
        with pytest.raises(ValueError):
            parse_flag_value("enabled", "maybe")


class TestFlagStore:
    def test_in_memory(self):
        store = FlagStore()
        store.set(container_execution=True)
        assert store.get().container_execution

    def test_set_persists(self, tmp_path):
        path = tmp_path / "state" / "platform_flags.json"
        FlagStore(path).set(container_execution=True, cohort="beta")

        assert json.loads(path.read_text())["container_execution"] is True
        reloaded = FlagStore(path).get()
        assert reloaded.container_execution
        assert reloaded.cohort == "beta"

    def test_unknown_flag_rejected(self, tmp_path):
        store = FlagStore(tmp_path / "flags.json")
        with pytest.raises(KeyError):
            store.set(warp_drive=True)
        assert not (tmp_path / "flags.json").exists()

    def test_invalid_value_rejected(self):
        store = FlagStore()
        with pytest.raises(ValidationError):
            store.set(cohort="everyone")
        assert store.get().cohort == "internal"

    def test_overrides_not_written(self, tmp_path):
        path = tmp_path / "flags.json"
        store = FlagStore(path, overrides={"mcp_runtime_manager": True, "bogus": 1})
        assert store.get().mcp_runtime_manager
        assert not path.exists()

    def test_overrides_beat_file(self, tmp_path):
        path = tmp_path / "flags.json"
        path.write_text(json.dumps({"container_execution": True}))
        store = FlagStore(path, overrides={"container_execution": False})
        assert not store.get().container_execution

    def test_corrupt_file_gives_defaults(self, tmp_path):
        path = tmp_path / "flags.json"
        path.write_text("{not json")
        assert FlagStore(path).get() == PlatformFlags()

    def test_invalid_file_values_give_defaults(self, tmp_path):
        path = tmp_path / "flags.json"
        path.write_text(json.dumps({"cohort": "nobody"}))
        assert FlagStore(path).get() == PlatformFlags()

    def test_master_switch(self):
        store = FlagStore()
        assert store.is_enabled("checkpoint_rollback")
        store.set(enabled=False)
        assert not store.is_enabled("checkpoint_rollback")
        assert not store.is_enabled("enabled")

    def test_is_enabled_rejects_unknown_and_non_boolean(self):
        store = FlagStore()
        with pytest.raises(KeyError):
            store.is_enabled("warp_drive")
        with pytest.raises(KeyError):
            store.is_enabled("cohort")
