"""Tests for brightpanda.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from brightpanda.config import BrightpandaConfig, ConfigError, load_config


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert isinstance(config, BrightpandaConfig)
    assert config.root == tmp_path.resolve()
    assert config.output == tmp_path.resolve() / "brightpanda.json"
    assert config.cache.enabled is True
    assert config.cache.path == tmp_path.resolve() / ".brightpanda" / "cache.bin"
    assert config.cache.max_entries == 10_000
    assert config.cache.max_bytes == 0
    assert config.walker.max_depth == 0
    assert config.walker.respect_gitignore is True
    assert config.walker.extensions == []
    assert config.plugins.enabled is None
    assert config.plugins.http_call_confidence is None
    assert config.scan.workers == 1
    assert config.scan.incremental is True


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / ".brightpanda.yml"
    config_file.write_text(
        """
output: "out/manifest.json"
cache:
  enabled: yes
  path: "state/cache.bin"
  max_entries: 500
  max_bytes: 65536
walker:
  follow_symlinks: true
  respect_gitignore: false
  max_depth: 6
  extensions: [".py", js]
  exclude_paths:
    - "fixtures"
exclude_paths:
  - "sandbox"
plugins:
  enabled: [python]
  query_dir: "queries"
  http_call_confidence: 0.6
  max_parsers: 4
scan:
  workers: 3
  incremental: false
""",
        encoding="utf-8",
    )

    config = load_config(config_file)
    root = tmp_path.resolve()

    assert config.output == root / "out" / "manifest.json"
    assert config.cache.path == root / "state" / "cache.bin"
    assert config.cache.max_entries == 500
    assert config.cache.max_bytes == 65536
    assert config.walker.follow_symlinks is True
    assert config.walker.respect_gitignore is False
    assert config.walker.max_depth == 6
    assert config.walker.extensions == ["py", "js"]
    assert config.walker.exclude_paths == ["fixtures", "sandbox"]
    assert config.plugins.enabled == ["python"]
    assert config.plugins.query_dir == root / "queries"
    assert config.plugins.http_call_confidence == pytest.approx(0.6)
    assert config.plugins.max_parsers == 4
    assert config.scan.workers == 3
    assert config.scan.incremental is False


def test_load_config_accepts_repository_directory(tmp_path: Path) -> None:
    (tmp_path / ".brightpanda.yml").write_text("cache:\n  enabled: false\n", encoding="utf-8")

    config = load_config(tmp_path)

    assert config.cache.enabled is False


def test_empty_config_file_yields_defaults(tmp_path: Path) -> None:
    (tmp_path / ".brightpanda.yml").write_text("\n# nothing\n", encoding="utf-8")

    config = load_config(tmp_path)

    assert config.scan.workers == 1


def test_non_mapping_root_is_rejected(tmp_path: Path) -> None:
    (tmp_path / ".brightpanda.yml").write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_invalid_yaml_is_rejected(tmp_path: Path) -> None:
    (tmp_path / ".brightpanda.yml").write_text("cache: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


@pytest.mark.parametrize(
    "body",
    [
        "plugins:\n  http_call_confidence: 1.5\n",
        "plugins:\n  max_parsers: 0\n",
        "scan:\n  workers: 0\n",
        "cache:\n  max_entries: -1\n",
    ],
)
def test_out_of_range_values_are_rejected(tmp_path: Path, body: str) -> None:
    (tmp_path / ".brightpanda.yml").write_text(body, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path)
