from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
import os
import yaml


DEFAULT_CONFIG_FILE = ".difflint.yml"

DEFAULT_PROJECT = "openml/openml-python"

DEFAULT_SETTINGS = {
    "project": DEFAULT_PROJECT,
    "project_url": None,
    "reference_branch": "develop",
    "release_branch": "master",
    "pr_remote": "origin",
    "temporary_remote": "tmp_reference_upstream",
    "allow_temporary_remote": True,
    "examples_prefix": "examples/",
    "examples_config": "./examples/.flake8",
    "max_line_length": 100,
    "ignore": ["E402", "W503"],
    "include_suffixes": [".py"],
    "changed_lines_only": True,
    "git_timeout_seconds": 120.0,
    "fetch_retries": 0,
    "fetch_retry_delay_seconds": 2.0,
}


@dataclass
class DifflintConfig:
    project: str = DEFAULT_PROJECT
    project_url: str | None = None
    reference_branch: str = "develop"
    release_branch: str = "master"
    pr_remote: str = "origin"
    temporary_remote: str = "tmp_reference_upstream"
    allow_temporary_remote: bool = True
    examples_prefix: str = "examples/"
    examples_config: str = "./examples/.flake8"
    max_line_length: int = 100
    ignore: list[str] = field(default_factory=lambda: ["E402", "W503"])
    include_suffixes: list[str] = field(default_factory=lambda: [".py"])
    changed_lines_only: bool = True
    git_timeout_seconds: float = 120.0
    fetch_retries: int = 0
    fetch_retry_delay_seconds: float = 2.0

    def __post_init__(self) -> None:
        if not self.project_url:
            self.project_url = f"https://github.com/{self.project}.git"


def load_env_file(path: Path) -> None:
    """Load simple KEY=VALUE pairs from a .env file without overriding existing env."""
    if not path.exists() or not path.is_file():
        return

    for raw in path.read_text(errors="ignore").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_list(key: str, value: object) -> list[str]:
    if isinstance(value, str):
        return [x.strip() for x in value.split(",") if x.strip()]
    if isinstance(value, list):
        return [str(x) for x in value]
    raise ValueError(f"Config '{key}' must be a list or comma-separated string")


def load_config(path: str | Path | None, root: Path | None = None) -> DifflintConfig:
    """Load settings from YAML, falling back to ``<root>/.difflint.yml`` and then defaults."""
    config_path: Path | None = None
    if path:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
    elif root is not None and (root / DEFAULT_CONFIG_FILE).exists():
        config_path = root / DEFAULT_CONFIG_FILE

    settings = dict(DEFAULT_SETTINGS)
    settings["ignore"] = list(DEFAULT_SETTINGS["ignore"])
    settings["include_suffixes"] = list(DEFAULT_SETTINGS["include_suffixes"])

    if config_path is not None:
        data = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {config_path} must contain a mapping")
        known = {f.name for f in fields(DifflintConfig)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys in {config_path}: {', '.join(unknown)}")
        settings.update(data)

    for key in ("ignore", "include_suffixes"):
        settings[key] = _as_list(key, settings[key])

    try:
        settings["max_line_length"] = int(settings["max_line_length"])
        settings["git_timeout_seconds"] = float(settings["git_timeout_seconds"])
        settings["fetch_retries"] = max(0, int(settings["fetch_retries"]))
        settings["fetch_retry_delay_seconds"] = float(settings["fetch_retry_delay_seconds"])
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid numeric config value: {exc}") from exc

    return DifflintConfig(**settings)
