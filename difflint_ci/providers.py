"""CI provider adapters.

Each provider turns its CI system's environment into an
:class:`~difflint_ci.models.ExecutionContext`; the resolver never reads the
environment itself.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Protocol
import json
import logging
import re

from difflint_ci.models import ExecutionContext

logger = logging.getLogger(__name__)

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"", "0", "false", "no", "off", "none"}
NULL_SHA = re.compile(r"^0+$")
PR_REF = re.compile(r"^refs/pull/(\d+)/")


def env_flag(value: str | None) -> bool:
    return (value or "").strip().lower() in TRUE_VALUES


def pull_request_id(value: str | None) -> str | None:
    v = (value or "").strip()
    if v.lower() in FALSE_VALUES:
        return None
    return v


class CIProvider(Protocol):
    name: str

    def detect(self, env: Mapping[str, str]) -> bool:
        ...

    def context(self, env: Mapping[str, str], target_repo_slug: str) -> ExecutionContext:
        ...


class GenericProvider:
    """Provider-neutral variables: CI_RUNNING, CURRENT_BRANCH, IS_PULL_REQUEST, REPO_SLUG, COMMIT_RANGE."""

    name = "generic"

    def detect(self, env: Mapping[str, str]) -> bool:
        return "CI_RUNNING" in env

    def context(self, env: Mapping[str, str], target_repo_slug: str) -> ExecutionContext:
        return ExecutionContext(
            is_ci=env_flag(env.get("CI_RUNNING")),
            current_branch_ref=env.get("CURRENT_BRANCH", "").strip(),
            pull_request_id=pull_request_id(env.get("IS_PULL_REQUEST")),
            explicit_commit_range=env.get("COMMIT_RANGE", "").strip() or None,
            repo_slug=env.get("REPO_SLUG", "").strip(),
            target_repo_slug=target_repo_slug,
            provider=self.name,
        )


class TravisProvider:
    name = "travis"

    def detect(self, env: Mapping[str, str]) -> bool:
        return env_flag(env.get("TRAVIS"))

    def context(self, env: Mapping[str, str], target_repo_slug: str) -> ExecutionContext:
        # For PR builds TRAVIS_BRANCH is the branch the PR targets.
        return ExecutionContext(
            is_ci=env_flag(env.get("TRAVIS")),
            current_branch_ref=env.get("TRAVIS_BRANCH", "").strip(),
            pull_request_id=pull_request_id(env.get("TRAVIS_PULL_REQUEST")),
            explicit_commit_range=env.get("TRAVIS_COMMIT_RANGE", "").strip() or None,
            repo_slug=env.get("TRAVIS_REPO_SLUG", "").strip(),
            target_repo_slug=target_repo_slug,
            provider=self.name,
        )


class GitHubActionsProvider:
    name = "github"

    def detect(self, env: Mapping[str, str]) -> bool:
        return env_flag(env.get("GITHUB_ACTIONS"))

    def _load_event(self, env: Mapping[str, str]) -> dict:
        path = env.get("GITHUB_EVENT_PATH")
        if not path:
            return {}
        event_file = Path(path)
        if not event_file.is_file():
            return {}
        try:
            data = json.loads(event_file.read_text())
        except (OSError, ValueError) as exc:
            logger.warning("Could not read GitHub event payload %s: %s", path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def context(self, env: Mapping[str, str], target_repo_slug: str) -> ExecutionContext:
        event_name = env.get("GITHUB_EVENT_NAME", "")
        event = self._load_event(env)

        pr_id: str | None = None
        branch = env.get("GITHUB_REF_NAME", "").strip()
        commit_range: str | None = None

        if event_name.startswith("pull_request"):
            m = PR_REF.match(env.get("GITHUB_REF", ""))
            if m:
                pr_id = m.group(1)
            elif isinstance(event.get("number"), int):
                pr_id = str(event["number"])
            branch = env.get("GITHUB_BASE_REF", "").strip() or branch
        else:
            before = str(event.get("before") or "")
            after = str(event.get("after") or "")
            # A null "before" SHA means a newly pushed branch.
            if before and after and not NULL_SHA.match(before):
                commit_range = f"{before}...{after}"

        return ExecutionContext(
            is_ci=True,
            current_branch_ref=branch,
            pull_request_id=pr_id,
            explicit_commit_range=commit_range,
            repo_slug=env.get("GITHUB_REPOSITORY", "").strip(),
            target_repo_slug=target_repo_slug,
            provider=self.name,
        )


class LocalProvider:
    """Developer machine: no CI variables, resolve against the checked-out branch."""

    name = "local"

    def detect(self, env: Mapping[str, str]) -> bool:
        return True

    def context(self, env: Mapping[str, str], target_repo_slug: str) -> ExecutionContext:
        return ExecutionContext(
            is_ci=False,
            current_branch_ref="",
            repo_slug="",
            target_repo_slug=target_repo_slug,
            provider=self.name,
        )


PROVIDERS: dict[str, CIProvider] = {
    "github": GitHubActionsProvider(),
    "travis": TravisProvider(),
    "generic": GenericProvider(),
    "local": LocalProvider(),
}


def get_provider(name: str, env: Mapping[str, str]) -> CIProvider:
    key = (name or "auto").strip().lower()
    if key == "auto":
        for provider in PROVIDERS.values():
            if provider.detect(env):
                return provider
        return PROVIDERS["local"]
    if key not in PROVIDERS:
        raise ValueError(f"Unknown CI provider '{name}' (expected auto|{'|'.join(PROVIDERS)})")
    return PROVIDERS[key]


def build_context(env: Mapping[str, str], target_repo_slug: str, provider: str = "auto") -> ExecutionContext:
    return get_provider(provider, env).context(env, target_repo_slug)
