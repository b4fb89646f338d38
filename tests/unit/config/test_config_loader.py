"""Unit tests for bugops YAML loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from bugops.config.loader import ConfigLoadError, load_config_file, resolve_config_path


def test_missing_file_is_empty(tmp_path: Path) -> None:
    assert load_config_file(tmp_path / "absent.yaml") == {}


def test_blank_file_is_empty(tmp_path: Path) -> None:
    path = tmp_path / "bugops.yaml"
    path.write_text("\n# nothing here\n", encoding="utf-8")
    assert load_config_file(path) == {}


def test_malformed_yaml_reports_position(tmp_path: Path) -> None:
    path = tmp_path / "bugops.yaml"
    path.write_text("chat:\n  admin_channel: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigLoadError, match="Invalid YAML at"):
        load_config_file(path)


def test_non_mapping_root_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bugops.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigLoadError, match="mapping"):
        load_config_file(path)


def test_resolve_prefers_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("BUGOPS_CONFIG", str(tmp_path / "env.yaml"))
    assert resolve_config_path(str(tmp_path / "cli.yaml")) == tmp_path / "env.yaml"


def test_resolve_falls_back_to_cwd(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    assert resolve_config_path() == tmp_path / "bugops.yaml"
