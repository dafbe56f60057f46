from __future__ import annotations

from pathlib import Path
import logging
import re
import subprocess
import time

from difflint_ci.errors import FetchFailure, GitCommandError, ResolutionTimeout
from difflint_ci.models import CommitRange, ModifiedFileSet, Remote

logger = logging.getLogger(__name__)

HUNK_RE = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,(\d+))? @@")


class GitRepo:
    """Thin wrapper around the ``git`` executable for one working tree."""

    def __init__(self, root: Path, timeout_seconds: float | None = 120.0) -> None:
        self.root = root
        self.timeout_seconds = timeout_seconds

    def _run(self, *args: str) -> subprocess.CompletedProcess:
        cmd = ["git", *args]
        logger.debug("Running: %s", " ".join(cmd))
        try:
            return subprocess.run(
                cmd,
                cwd=str(self.root),
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout_seconds,
            )
        except FileNotFoundError as exc:
            raise GitCommandError(cmd, 127, "git is not installed or not available in PATH") from exc
        except subprocess.TimeoutExpired as exc:
            raise ResolutionTimeout(cmd, self.timeout_seconds or 0) from exc

    def run(self, *args: str) -> str:
        proc = self._run(*args)
        if proc.returncode != 0:
            raise GitCommandError(["git", *args], proc.returncode, (proc.stderr or "").strip())
        return (proc.stdout or "").strip()

    # remotes

    def remotes(self) -> list[Remote]:
        out: dict[str, Remote] = {}
        for line in self.run("remote", "-v").splitlines():
            parts = line.split()
            if len(parts) < 2:
                continue
            out.setdefault(parts[0], Remote(name=parts[0], url=parts[1]))
        return list(out.values())

    def find_remote(self, project: str) -> Remote | None:
        wanted = project.strip().strip("/").lower()
        for remote in self.remotes():
            if remote_slug(remote.url) == wanted:
                return remote
        return None

    def add_remote(self, name: str, url: str) -> Remote:
        self.run("remote", "add", name, url)
        return Remote(name=name, url=url, temporary=True)

    def remove_remote(self, name: str) -> None:
        self.run("remote", "remove", name)

    # refs and history

    def current_branch(self) -> str:
        return self.run("rev-parse", "--abbrev-ref", "HEAD")

    def short_hash(self, ref: str) -> str:
        return self.run("rev-parse", "--short", f"{ref}^{{commit}}")

    def is_shallow(self) -> bool:
        proc = self._run("rev-parse", "--is-shallow-repository")
        if proc.returncode == 0:
            return (proc.stdout or "").strip() == "true"
        return (self.root / ".git" / "shallow").exists()

    def unshallow(self, remote: str = "origin") -> None:
        self.run("fetch", "--unshallow", remote)

    def fetch(self, remote: str, refspec: str, retries: int = 0, retry_delay: float = 0.0) -> None:
        attempts = max(0, retries) + 1
        stderr = ""
        for attempt in range(1, attempts + 1):
            proc = self._run("fetch", remote, refspec)
            if proc.returncode == 0:
                if attempt > 1:
                    logger.info("Fetched %s from %s after %d attempts", refspec, remote, attempt)
                return
            stderr = (proc.stderr or "").strip()
            if attempt < attempts:
                logger.warning(
                    "Fetching %s from %s failed (attempt %d/%d): %s",
                    refspec,
                    remote,
                    attempt,
                    attempts,
                    stderr,
                )
                if retry_delay > 0:
                    time.sleep(retry_delay)
        raise FetchFailure(remote, refspec, stderr)

    def merge_base(self, a: str, b: str) -> str | None:
        """Return the merge base of ``a`` and ``b``, or None when histories are disjoint."""
        proc = self._run("merge-base", a, b)
        if proc.returncode == 0:
            return (proc.stdout or "").strip() or None
        if proc.returncode == 1:
            return None
        raise GitCommandError(["git", "merge-base", a, b], proc.returncode, (proc.stderr or "").strip())

    def delete_ref(self, ref: str) -> None:
        self.run("update-ref", "-d", ref)

    def describe_commit(self, ref: str) -> str:
        return self.run("--no-pager", "show", "--no-patch", "--format=%h %s (%an, %ad)", "--date=short", ref)

    def count_commits(self, commit_range: CommitRange) -> int:
        out = self.run("rev-list", "--count", str(commit_range))
        try:
            return int(out)
        except ValueError:
            return 0

    # diffs

    def changed_files(self, commit_range: CommitRange) -> ModifiedFileSet:
        out = self.run(
            "diff",
            "--no-ext-diff",
            "--name-only",
            "--diff-filter=ACMR",
            str(commit_range),
        )
        return ModifiedFileSet.from_lines(out.splitlines())

    def changed_lines(self, commit_range: CommitRange, paths: list[str]) -> dict[str, set[int]]:
        """Map each path to the line numbers added or modified in ``commit_range``."""
        if not paths:
            return {}
        out = self.run(
            "diff",
            "--no-ext-diff",
            "--no-color",
            "--unified=0",
            str(commit_range),
            "--",
            *paths,
        )
        return parse_changed_lines(out)

    def show_file(self, revision: str, path: str) -> str:
        """Return the content of ``path`` as committed at ``revision``, without stripping."""
        proc = self._run("show", f"{revision}:{path}")
        if proc.returncode != 0:
            raise GitCommandError(["git", "show", f"{revision}:{path}"], proc.returncode, (proc.stderr or "").strip())
        return proc.stdout or ""


def parse_changed_lines(diff_text: str) -> dict[str, set[int]]:
    result: dict[str, set[int]] = {}
    current: str | None = None
    for line in diff_text.splitlines():
        if line.startswith("+++ "):
            target = line[4:].strip()
            if target == "/dev/null":
                current = None
            else:
                current = target[2:] if target.startswith("b/") else target
                result.setdefault(current, set())
            continue
        if current is None:
            continue
        m = HUNK_RE.match(line)
        if m:
            start = int(m.group(1))
            count = int(m.group(2) or "1")
            result[current].update(range(start, start + count))
    return result


def remote_slug(url: str) -> str:
    """Return the lower-cased ``owner/name`` at the end of a remote URL."""
    path = url.strip().rstrip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    parts = [p for p in re.split(r"[/:]", path) if p]
    return "/".join(parts[-2:]).lower()
