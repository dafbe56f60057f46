"""End-to-end resolution against throwaway repositories."""

from pathlib import Path
import shutil
import subprocess

import pytest

from difflint_ci.cli import run_check
from difflint_ci.config import DifflintConfig
from difflint_ci.errors import NoCommonAncestor
from difflint_ci.git_scope import GitRepo
from difflint_ci.models import CommitRange, ExecutionContext
from difflint_ci.resolver import RangeResolver

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def git(cwd: Path, *args: str) -> str:
    proc = subprocess.run(["git", *args], cwd=str(cwd), capture_output=True, text=True, check=True)
    return proc.stdout.strip()


def commit_file(repo: Path, rel: str, content: str) -> str:
    path = repo / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    git(repo, "add", rel)
    git(repo, "commit", "-q", "-m", f"edit {rel}")
    return git(repo, "rev-parse", "HEAD")


def init_repo(path: Path, branch: str) -> Path:
    path.mkdir()
    git(path, "init", "-q")
    git(path, "symbolic-ref", "HEAD", f"refs/heads/{branch}")
    return path


@pytest.fixture(autouse=True)
def git_identity(monkeypatch):
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")


def _config(upstream: Path) -> DifflintConfig:
    return DifflintConfig(project="example/upstream-project", project_url=str(upstream))


def _local_ctx() -> ExecutionContext:
    return ExecutionContext(
        is_ci=False,
        current_branch_ref="",
        repo_slug="",
        target_repo_slug="example/upstream-project",
    )


def test_range_starts_at_merge_base(tmp_path: Path):
    upstream = init_repo(tmp_path / "upstream", "develop")
    base = commit_file(upstream, "base.py", "x = 1\n")

    work = tmp_path / "work"
    git(tmp_path, "clone", "-q", str(upstream), str(work))
    git(work, "checkout", "-q", "-b", "feature")
    commit_file(work, "a.py", "a = 1\n")
    head = commit_file(work, "examples/b.py", "b = 2\n")

    commit_file(upstream, "later.py", "y = 2\n")

    resolver = RangeResolver(GitRepo(work), _config(upstream))
    first = resolver.resolve(_local_ctx())
    second = resolver.resolve(_local_ctx())

    assert base.startswith(first.commit_range.base)
    assert head.startswith(first.commit_range.head)
    assert first.files.paths == ("a.py", "examples/b.py")
    assert first.files.partition("examples/") == (["a.py"], ["examples/b.py"])
    assert first.commit_range == second.commit_range
    assert "tmp_reference_upstream" not in git(work, "remote")


def test_no_changes_gives_empty_file_set(tmp_path: Path):
    upstream = init_repo(tmp_path / "upstream", "develop")
    commit_file(upstream, "base.py", "x = 1\n")
    work = tmp_path / "work"
    git(tmp_path, "clone", "-q", str(upstream), str(work))

    res = RangeResolver(GitRepo(work), _config(upstream)).resolve(_local_ctx())
    assert res.commit_range.base == res.commit_range.head
    assert not res.files


def test_disjoint_histories_fail_and_remove_temp_remote(tmp_path: Path):
    upstream = init_repo(tmp_path / "upstream", "develop")
    commit_file(upstream, "base.py", "x = 1\n")
    work = init_repo(tmp_path / "work", "orphan")
    commit_file(work, "other.py", "z = 3\n")

    with pytest.raises(NoCommonAncestor) as exc_info:
        RangeResolver(GitRepo(work), _config(upstream)).resolve(_local_ctx())

    assert "orphan" in str(exc_info.value)
    assert "tmp_reference_upstream/develop" in str(exc_info.value)
    assert "tmp_reference_upstream" not in git(work, "remote")


def test_changed_lines_against_real_diff(tmp_path: Path):
    repo = init_repo(tmp_path / "repo", "develop")
    first = commit_file(repo, "a.py", "one\ntwo\nthree\n")
    second = commit_file(repo, "a.py", "one\nTWO\nthree\nfour\n")

    changed = GitRepo(repo).changed_lines(CommitRange(first, second), ["a.py"])
    assert changed == {"a.py": {2, 4}}


def test_explicit_range_on_shallow_clone(tmp_path: Path):
    upstream = init_repo(tmp_path / "upstream", "develop")
    base = commit_file(upstream, "base.py", "x = 1\n")
    commit_file(upstream, "a.py", "a = 1\n")
    head = commit_file(upstream, "examples/b.py", "b = 2\n")

    work = tmp_path / "work"
    git(tmp_path, "clone", "-q", "--depth", "1", upstream.as_uri(), str(work))
    assert git(work, "rev-parse", "--is-shallow-repository") == "true"

    ctx = ExecutionContext(
        is_ci=True,
        current_branch_ref="develop",
        repo_slug="example/upstream-project",
        target_repo_slug="example/upstream-project",
        explicit_commit_range=f"{base}...{head}",
    )
    res = RangeResolver(GitRepo(work), _config(upstream)).resolve(ctx)

    assert str(res.commit_range) == f"{base}...{head}"
    assert res.files.paths == ("a.py", "examples/b.py")
    assert git(work, "rev-parse", "--is-shallow-repository") == "false"


def test_merge_checkout_lints_lines_as_committed_on_the_branch(tmp_path: Path):
    pytest.importorskip("flake8")
    original = "".join(f"x{i} = {i}\n" for i in range(1, 7))
    upstream = init_repo(tmp_path / "upstream", "develop")
    commit_file(upstream, "a.py", original)

    work = tmp_path / "work"
    git(tmp_path, "clone", "-q", str(upstream), str(work))
    git(work, "checkout", "-q", "-b", "feature")
    lines = original.splitlines(keepends=True)
    commit_file(work, "a.py", "".join(lines[:4] + ["import os\n"] + lines[4:]))

    # The reference branch moves on, shifting every line of the file down by three.
    commit_file(upstream, "a.py", "y1 = 1\ny2 = 2\ny3 = 3\n" + original)

    # CI checks out the merge of the branch into the reference branch.
    git(work, "fetch", "-q", "origin")
    git(work, "checkout", "-q", "--detach", "origin/develop")
    git(work, "merge", "-q", "--no-edit", "feature")
    assert (work / "a.py").read_text().splitlines()[7] == "import os"

    ctx = ExecutionContext(
        is_ci=False,
        current_branch_ref="feature",
        repo_slug="",
        target_repo_slug="example/upstream-project",
    )
    report = run_check(work, _config(upstream), ctx)

    assert report.outcome == "violations", report.message
    assert [(v.path, v.line, v.code) for v in report.violations] == [("a.py", 5, "F401")]
