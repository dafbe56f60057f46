from __future__ import annotations

from pathlib import Path
import logging
import re
import subprocess
import sys

from difflint_ci.config import DifflintConfig
from difflint_ci.errors import LinterError
from difflint_ci.git_scope import GitRepo
from difflint_ci.models import GroupResult, Violation, sort_violations

logger = logging.getLogger(__name__)

FLAKE8_FORMAT = "%(path)s:%(row)d:%(col)d: %(code)s %(text)s"
VIOLATION_RE = re.compile(r"^(?P<path>.+?):(?P<line>\d+):(?P<col>\d+): (?P<code>[A-Z]+\d+) (?P<text>.*)$")


def lintable(paths: list[str], suffixes: list[str]) -> list[str]:
    """Keep paths with a checked suffix."""
    if not suffixes:
        return list(paths)
    return [p for p in paths if any(p.endswith(s) for s in suffixes)]


def build_command(
    files: list[str],
    config: DifflintConfig,
    flake8_config: str | None = None,
    stdin_name: str | None = None,
) -> list[str]:
    cmd = [
        sys.executable,
        "-m",
        "flake8",
        "--max-line-length",
        str(config.max_line_length),
        f"--format={FLAKE8_FORMAT}",
    ]
    if config.ignore:
        cmd.extend(["--ignore", ",".join(config.ignore)])
    if flake8_config:
        cmd.extend(["--config", flake8_config])
    if stdin_name is not None:
        cmd.extend([f"--stdin-display-name={stdin_name}", "-"])
        return cmd
    cmd.append("--")
    cmd.extend(files)
    return cmd


def parse_violations(output: str) -> list[Violation]:
    out: list[Violation] = []
    for line in output.splitlines():
        m = VIOLATION_RE.match(line.strip())
        if not m:
            continue
        path = m.group("path")
        if path.startswith("./"):
            path = path[2:]
        out.append(
            Violation(
                path=path,
                line=int(m.group("line")),
                column=int(m.group("col")),
                code=m.group("code"),
                text=m.group("text"),
            )
        )
    return out


def filter_to_changed_lines(
    violations: list[Violation],
    changed: dict[str, set[int]],
) -> tuple[list[Violation], int]:
    kept = [v for v in violations if v.line in changed.get(v.path, set())]
    return kept, len(violations) - len(kept)


def _invoke(cmd: list[str], root: Path, name: str, source: str | None = None) -> str:
    logger.debug("Running: %s", " ".join(cmd))
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(root),
            input=source,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as exc:
        raise LinterError(f"Could not start flake8: {exc}") from exc

    if proc.returncode not in (0, 1):
        stderr = (proc.stderr or "").strip()
        raise LinterError(
            f"flake8 exited with status {proc.returncode} for group '{name}'. {stderr or 'Is flake8 installed?'}"
        )
    return proc.stdout or ""


def run_flake8(
    name: str,
    files: list[str],
    root: Path,
    config: DifflintConfig,
    flake8_config: str | None = None,
    changed_lines: dict[str, set[int]] | None = None,
    git: GitRepo | None = None,
    revision: str | None = None,
) -> GroupResult:
    """
    Run flake8 over one file group; an empty group is a no-op.

    With ``git`` and ``revision`` each file is linted as committed at that
    revision, so reported line numbers match ``changed_lines`` even when the
    working tree is a merge checkout. Otherwise the working tree is linted.
    """
    if not files:
        return GroupResult(name=name, files=[], config=flake8_config)

    if git is not None and revision is not None:
        outputs = []
        for path in files:
            source = git.show_file(revision, path)
            cmd = build_command([], config, flake8_config, stdin_name=path)
            outputs.append(_invoke(cmd, root, name, source))
        output = "\n".join(outputs)
    else:
        output = _invoke(build_command(files, config, flake8_config), root, name)

    violations = parse_violations(output)
    filtered_out = 0
    if changed_lines is not None:
        violations, filtered_out = filter_to_changed_lines(violations, changed_lines)
        if filtered_out:
            logger.info("%s: ignored %d violation(s) on unchanged lines", name, filtered_out)

    return GroupResult(
        name=name,
        files=list(files),
        violations=sort_violations(violations),
        filtered_out=filtered_out,
        config=flake8_config,
    )
