from __future__ import annotations

from pathlib import Path
import logging
import os
import typer

from difflint_ci.config import DifflintConfig, load_config, load_env_file
from difflint_ci.errors import DifflintError, LinterError, ResolutionError
from difflint_ci.git_scope import GitRepo
from difflint_ci.linter import lintable, run_flake8
from difflint_ci.logging_config import setup_logging
from difflint_ci.models import ExecutionContext, RunReport
from difflint_ci.providers import build_context
from difflint_ci.reporters import write_json_report, write_markdown_report
from difflint_ci.resolver import RangeResolver

logger = logging.getLogger(__name__)

app = typer.Typer(help="difflint-ci: run flake8 on the lines a change touched")


def run_check(
    root: Path,
    config: DifflintConfig,
    ctx: ExecutionContext,
    git: GitRepo | None = None,
) -> RunReport:
    git = git or GitRepo(root, timeout_seconds=config.git_timeout_seconds)

    try:
        resolution = RangeResolver(git, config).resolve(ctx)
    except ResolutionError as exc:
        return RunReport(outcome="error", context=ctx, message=f"Could not resolve commit range: {exc}")

    if resolution.skipped:
        return RunReport(outcome="skipped", context=ctx, message=resolution.skip_reason or "")

    commit_range = resolution.commit_range
    if commit_range is None:
        return RunReport(outcome="error", context=ctx, message="Could not resolve commit range: none was returned")
    try:
        logger.info(
            "Running flake8 on the diff in the range %s (%d commit(s))",
            commit_range,
            git.count_commits(commit_range),
        )
    except DifflintError as exc:
        logger.warning("Could not count commits in %s: %s", commit_range, exc)

    files = resolution.files
    if not files:
        return RunReport(
            outcome="no_files",
            context=ctx,
            commit_range=commit_range,
            message="No file has been modified",
        )

    outside, inside = files.partition(config.examples_prefix)
    outside = lintable(outside, config.include_suffixes)
    inside = lintable(inside, config.include_suffixes)

    # Files are read at the range head: the checkout may be a merge whose
    # line numbers differ from the diff hunks.
    try:
        changed = None
        if config.changed_lines_only:
            changed = git.changed_lines(commit_range, outside + inside)
        groups = [
            run_flake8(
                "default",
                outside,
                root,
                config,
                changed_lines=changed,
                git=git,
                revision=commit_range.head,
            ),
            run_flake8(
                "examples",
                inside,
                root,
                config,
                flake8_config=config.examples_config,
                changed_lines=changed,
                git=git,
                revision=commit_range.head,
            ),
        ]
    except ResolutionError as exc:
        return RunReport(
            outcome="error",
            context=ctx,
            commit_range=commit_range,
            files=files,
            message=f"Could not read the changed files: {exc}",
        )
    except LinterError as exc:
        return RunReport(
            outcome="error",
            context=ctx,
            commit_range=commit_range,
            files=files,
            message=f"Linter failed: {exc}",
        )

    outcome = "passed" if all(g.passed for g in groups) else "violations"
    return RunReport(
        outcome=outcome,
        context=ctx,
        commit_range=commit_range,
        files=files,
        groups=groups,
    )


@app.command()
def check(
    path: str = typer.Option(".", help="Path to the git working tree to check"),
    config: str | None = typer.Option(None, help="Config YAML path (default: <path>/.difflint.yml if present)"),
    provider: str = typer.Option("auto", help="CI provider: auto|github|travis|generic|local"),
    json_out: str | None = typer.Option(None, help="Optional JSON report output path"),
    md_out: str | None = typer.Option(None, help="Optional Markdown report output path"),
    log_level: str | None = typer.Option(None, help="Log level (default: DIFFLINT_LOG_LEVEL or INFO)"),
) -> None:
    """Resolve the change's commit range and run flake8 on the files it modified."""
    root = Path(path).resolve()
    if not root.exists():
        typer.secho(f"Path does not exist: {root}", fg=typer.colors.RED)
        raise typer.Exit(code=2)

    load_env_file(Path.cwd() / ".env")
    load_env_file(root / ".env")

    try:
        setup_logging(log_level)
        cfg = load_config(config, root)
        ctx = build_context(os.environ, cfg.project, provider)
    except (ValueError, FileNotFoundError) as exc:
        typer.secho(f"Invalid configuration: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=2)

    typer.echo(
        f"CI provider={ctx.provider} on_ci={ctx.is_ci} branch={ctx.current_branch_ref or 'n/a'} "
        f"pull_request={ctx.pull_request_id or 'false'} repository={ctx.repo_slug or 'n/a'}"
    )

    report = run_check(root, cfg, ctx)

    if json_out:
        write_json_report(report, Path(json_out))
    if md_out:
        write_markdown_report(report, Path(md_out))

    if report.outcome == "error":
        typer.secho(report.message, fg=typer.colors.RED)
    elif report.outcome in ("skipped", "no_files"):
        typer.echo(report.message)
    else:
        for v in report.violations:
            typer.echo(str(v))
        if report.outcome == "violations":
            typer.secho(
                f"flake8 reported {len(report.violations)} violation(s) in {report.commit_range}",
                fg=typer.colors.RED,
            )
        else:
            typer.secho("No problem detected by flake8", fg=typer.colors.GREEN)

    raise typer.Exit(code=report.exit_code)


if __name__ == "__main__":
    app()
