"""Tests for configuration loading and override behavior."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from partylink.utils.config import Config, SearchConfig, get_config, load_config, reset_config


@pytest.fixture(autouse=True)
def _reset_global_config(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure config singleton doesn't leak between tests."""
    for name in ("DIRECTORY_BASE_URL", "DIRECTORY_COMPANY_ID", "DIRECTORY_API_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(Path(__file__).parent)
    reset_config()
    yield
    reset_config()


def _write_yaml(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")


def test_yaml_loads_values(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {"search": {"debounce_ms": 450, "scope": "external"}})

    cfg = load_config(cfg_path)

    assert cfg.search.debounce_ms == 450
    assert cfg.search.debounce_seconds == pytest.approx(0.45)
    assert cfg.search.scope == "external"
    assert cfg.form.default_mode == "full"
    assert get_config() is cfg


def test_env_overrides_yaml_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {"directory": {"directory_base_url": "http://localhost:5000"}})

    monkeypatch.setenv("DIRECTORY_COMPANY_ID", "company-42")
    monkeypatch.setenv("DIRECTORY_BASE_URL", "https://books.example.com")

    cfg = load_config(cfg_path)

    assert cfg.directory.directory_company_id == "company-42"
    assert cfg.directory.directory_base_url == "https://books.example.com"


def test_remote_directory_requires_company(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {"directory": {"directory_base_url": "https://books.example.com"}})

    with pytest.raises(ValueError, match="Company context"):
        load_config(cfg_path)


def test_non_http_base_url_rejected(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {"directory": {"directory_base_url": "ftp://books"}})

    with pytest.raises(ValueError, match="http"):
        load_config(cfg_path)


def test_invalid_yaml_root_type_raises(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(yaml.safe_dump(["not", "a", "mapping"]), encoding="utf-8")

    with pytest.raises(ValueError, match="YAML config root must be a mapping"):
        load_config(cfg_path)


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_get_config_before_load_raises() -> None:
    with pytest.raises(RuntimeError):
        get_config()


def test_debounce_range_is_validated() -> None:
    with pytest.raises(ValueError):
        SearchConfig(debounce_ms=10)


def test_deep_merge_keeps_unrelated_keys() -> None:
    merged = Config._deep_merge_dict(
        {"search": {"debounce_ms": 300, "result_limit": 20}},
        {"search": {"debounce_ms": 500}},
    )

    assert merged == {"search": {"debounce_ms": 500, "result_limit": 20}}


def test_repository_config_file_is_valid() -> None:
    cfg = load_config(Path(__file__).parent.parent / "config" / "config.yaml")

    assert cfg.search.min_query_length == 2
    assert cfg.form.auto_close_delay_ms == 1500
