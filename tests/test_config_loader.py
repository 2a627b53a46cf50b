"""Tests for YAML config discovery, merging and env-var interpolation."""

import pytest

from linkboard_sync.config_loader import (
    CONFIG_ENV_VAR,
    discover_config_files,
    interpolate_env_vars,
    load_hierarchical_config,
)
from linkboard_sync.errors import ConfigError


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run with an empty CWD and HOME so no real config file is found."""
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(work)
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    return home, work


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# interpolate_env_vars()
# ---------------------------------------------------------------------------


class TestInterpolation:
    def test_set_variable(self, monkeypatch):
        monkeypatch.setenv("LB_TEST_VAR", "value")
        assert interpolate_env_vars("x-${LB_TEST_VAR}-y") == "x-value-y"

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("LB_TEST_VAR", raising=False)
        assert interpolate_env_vars("${LB_TEST_VAR:-fallback}") == "fallback"

    def test_unset_without_default_is_empty(self, monkeypatch):
        monkeypatch.delenv("LB_TEST_VAR", raising=False)
        assert interpolate_env_vars("[${LB_TEST_VAR}]") == "[]"

    def test_plain_text_untouched(self):
        assert interpolate_env_vars("no variables") == "no variables"


# ---------------------------------------------------------------------------
# discover_config_files() / load_hierarchical_config()
# ---------------------------------------------------------------------------


class TestDiscovery:
    def test_nothing_found(self, isolated):
        assert discover_config_files() == []
        assert load_hierarchical_config() == {}

    def test_precedence_order(self, isolated, tmp_path, monkeypatch):
        home, work = isolated
        explicit = _write(tmp_path / "explicit.yml", "{}")
        project = _write(work / ".linkboard" / "config.yml", "{}")
        global_ = _write(home / ".config" / "linkboard" / "config.yml", "{}")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(explicit))

        found = discover_config_files()

        assert [p.resolve() for p in found] == [
            explicit.resolve(),
            project.resolve(),
            global_.resolve(),
        ]


class TestLoad:
    def test_project_sections_replace_global(self, isolated):
        home, work = isolated
        _write(
            home / ".config" / "linkboard" / "config.yml",
            "remote:\n  url: https://global.supabase.co\nsync:\n  max_retries: 1\n",
        )
        _write(
            work / ".linkboard" / "config.yml",
            "remote:\n  key: project-key\n",
        )

        merged = load_hierarchical_config()

        assert merged["remote"] == {"key": "project-key"}
        assert merged["sync"] == {"max_retries": 1}

    def test_env_vars_interpolated(self, isolated, monkeypatch):
        _, work = isolated
        monkeypatch.setenv("LB_TEST_KEY", "secret")
        _write(work / ".linkboard" / "config.yml", "remote:\n  key: ${LB_TEST_KEY}\n")

        assert load_hierarchical_config()["remote"]["key"] == "secret"

    def test_non_dict_root_skipped(self, isolated, caplog):
        _, work = isolated
        _write(work / ".linkboard" / "config.yml", "- a\n- b\n")

        assert load_hierarchical_config() == {}
        assert "non-dict root" in caplog.text

    def test_invalid_yaml_raises(self, isolated):
        _, work = isolated
        _write(work / ".linkboard" / "config.yml", "remote: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_hierarchical_config()
