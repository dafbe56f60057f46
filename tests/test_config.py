import os
from pathlib import Path

import pytest

from difflint_ci.config import DifflintConfig, load_config, load_env_file


def test_defaults_without_file(tmp_path: Path):
    cfg = load_config(None, tmp_path)
    assert cfg.project == "openml/openml-python"
    assert cfg.project_url == "https://github.com/openml/openml-python.git"
    assert cfg.reference_branch == "develop"
    assert cfg.release_branch == "master"
    assert cfg.examples_prefix == "examples/"
    assert cfg.max_line_length == 100
    assert cfg.ignore == ["E402", "W503"]
    assert cfg.fetch_retries == 0


def test_repo_config_file_is_picked_up(tmp_path: Path):
    (tmp_path / ".difflint.yml").write_text(
        "\n".join(
            [
                "project: acme/widgets",
                "reference_branch: main",
                "ignore: E203,W503",
                "max_line_length: '120'",
            ]
        )
    )
    cfg = load_config(None, tmp_path)
    assert cfg.project == "acme/widgets"
    assert cfg.project_url == "https://github.com/acme/widgets.git"
    assert cfg.reference_branch == "main"
    assert cfg.ignore == ["E203", "W503"]
    assert cfg.max_line_length == 120


def test_explicit_missing_config_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yml"))


def test_unknown_keys_rejected(tmp_path: Path):
    path = tmp_path / "c.yml"
    path.write_text("colour: blue\n")
    with pytest.raises(ValueError):
        load_config(str(path))


def test_invalid_number_rejected(tmp_path: Path):
    path = tmp_path / "c.yml"
    path.write_text("fetch_retries: lots\n")
    with pytest.raises(ValueError):
        load_config(str(path))


def test_explicit_project_url_kept():
    cfg = DifflintConfig(project="a/b", project_url="git@example.com:a/b.git")
    assert cfg.project_url == "git@example.com:a/b.git"


def test_load_env_file_does_not_override(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("DIFFLINT_EXISTING", "keep")
    monkeypatch.delenv("DIFFLINT_NEW", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("# comment\nDIFFLINT_EXISTING=replace\nDIFFLINT_NEW='fresh'\n")
    load_env_file(env_file)
    assert os.environ["DIFFLINT_EXISTING"] == "keep"
    assert os.environ["DIFFLINT_NEW"] == "fresh"
    monkeypatch.delenv("DIFFLINT_NEW")
