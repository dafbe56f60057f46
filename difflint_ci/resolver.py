"""Commit-range resolution for diff-scoped linting.

Rules are tried in order and the first applicable one wins:

1. on CI, builds of the release branch are skipped;
2. on CI, pushes to the main repository use the range supplied by CI
   (an empty range means a new branch and is skipped);
3. on CI, pull requests fetch the PR head into a local ref;
4. otherwise the range runs from the merge base with the upstream
   reference branch to the current ref.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator
import logging

from difflint_ci.config import DifflintConfig
from difflint_ci.errors import DifflintError, MissingRemote, NoCommonAncestor, ResolutionError
from difflint_ci.git_scope import GitRepo
from difflint_ci.models import CommitRange, ExecutionContext, Remote, Resolution

logger = logging.getLogger(__name__)


def pr_ref_name(pull_request_id: str) -> str:
    return f"refs/difflint/pr-{pull_request_id}"


class RangeResolver:
    def __init__(self, git: GitRepo, config: DifflintConfig) -> None:
        self.git = git
        self.config = config

    def resolve(self, ctx: ExecutionContext) -> Resolution:
        cfg = self.config

        if ctx.is_ci and ctx.current_branch_ref == cfg.release_branch:
            return Resolution.skip(
                f"Branch '{cfg.release_branch}' is the release target; style is not checked there"
            )

        local_ref: str | None = None
        if ctx.is_ci:
            if not ctx.is_pull_request:
                if ctx.repo_slug == ctx.target_repo_slug:
                    if not ctx.explicit_commit_range:
                        return Resolution.skip(
                            "New branch, no commit range from CI so passing this check by convention"
                        )
                    commit_range = CommitRange.parse(ctx.explicit_commit_range)
                    logger.info("Got the commit range from %s: %s", ctx.provider, commit_range)
                    self._ensure_full_history()
                    return self._with_files(Resolution(commit_range=commit_range))
            else:
                self._ensure_full_history()
                local_ref = pr_ref_name(ctx.pull_request_id or "")
                # Forced: a stale ref left by an earlier run is overwritten.
                self.git.fetch(
                    cfg.pr_remote,
                    f"+pull/{ctx.pull_request_id}/head:{local_ref}",
                    retries=cfg.fetch_retries,
                    retry_delay=cfg.fetch_retry_delay_seconds,
                )

        if local_ref is None:
            self._ensure_full_history()
            return self._with_files(self._ancestor_range(ctx.current_branch_ref or None))

        try:
            resolution = self._ancestor_range(local_ref)
        finally:
            self._best_effort(self.git.delete_ref, local_ref)
        return self._with_files(resolution)

    def _ensure_full_history(self) -> None:
        # CI clones are shallow; ranges and merge bases can reach past the clone depth.
        if self.git.is_shallow():
            logger.info("Unshallowing the clone so the whole commit range is available")
            self.git.unshallow(self.config.pr_remote)

    def _ancestor_range(self, local_ref: str | None) -> Resolution:
        cfg = self.config
        if not local_ref:
            local_ref = self.git.current_branch()

        with self.upstream_remote() as remote:
            upstream_ref = f"{remote.name}/{cfg.reference_branch}"
            self.git.fetch(
                remote.name,
                f"{cfg.reference_branch}:refs/remotes/{upstream_ref}",
                retries=cfg.fetch_retries,
                retry_delay=cfg.fetch_retry_delay_seconds,
            )
            local_short = self.git.short_hash(local_ref)
            upstream_short = self.git.short_hash(upstream_ref)

            base = self.git.merge_base(local_ref, upstream_ref)
            if not base:
                raise NoCommonAncestor(
                    f"{local_ref} ({local_short})",
                    f"{upstream_ref} ({upstream_short})",
                )
            base_short = self.git.short_hash(base)

        logger.info(
            "Common ancestor between %s (%s) and %s (%s) is %s",
            local_ref,
            local_short,
            upstream_ref,
            upstream_short,
            base_short,
        )
        try:
            logger.info("Common ancestor: %s", self.git.describe_commit(base_short))
        except DifflintError as exc:
            logger.debug("Could not describe %s: %s", base_short, exc)
        return Resolution(
            commit_range=CommitRange(base=base_short, head=local_short),
            local_ref=local_ref,
            upstream_ref=upstream_ref,
        )

    @contextmanager
    def upstream_remote(self) -> Iterator[Remote]:
        """Yield the remote for the target project, adding a temporary one if needed."""
        cfg = self.config
        remote = self.git.find_remote(cfg.project)
        if remote is None:
            if not cfg.allow_temporary_remote:
                raise MissingRemote(cfg.project, "temporary remotes are disabled")
            try:
                remote = self.git.add_remote(cfg.temporary_remote, cfg.project_url or "")
            except DifflintError as exc:
                raise MissingRemote(cfg.project, str(exc)) from exc
            logger.info("Added temporary remote %s -> %s", remote.name, remote.url)
        try:
            yield remote
        finally:
            if remote.temporary:
                self._best_effort(self.git.remove_remote, remote.name)

    def _with_files(self, resolution: Resolution) -> Resolution:
        if resolution.commit_range is None:
            raise ResolutionError("No commit range was resolved")
        files = self.git.changed_files(resolution.commit_range)
        return Resolution(
            commit_range=resolution.commit_range,
            files=files,
            local_ref=resolution.local_ref,
            upstream_ref=resolution.upstream_ref,
        )

    @staticmethod
    def _best_effort(action, *args: str) -> None:
        try:
            action(*args)
        except DifflintError as exc:
            logger.warning("Cleanup step failed and was ignored: %s", exc)
