from __future__ import annotations

from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any

from difflint_ci.errors import InvalidCommitRange


OUTCOMES = ("skipped", "no_files", "passed", "violations", "error")


@dataclass(frozen=True)
class ExecutionContext:
    is_ci: bool
    current_branch_ref: str
    repo_slug: str
    target_repo_slug: str
    pull_request_id: str | None = None
    explicit_commit_range: str | None = None
    provider: str = "local"

    @property
    def is_pull_request(self) -> bool:
        return self.pull_request_id is not None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Remote:
    name: str
    url: str
    temporary: bool = False


@dataclass(frozen=True)
class CommitRange:
    base: str
    head: str
    separator: str = ".."

    @classmethod
    def parse(cls, value: str) -> "CommitRange":
        text = value.strip()
        for sep in ("...", ".."):
            if sep in text:
                base, head = text.split(sep, 1)
                if base and head and "." not in (base[-1], head[0]):
                    return cls(base=base, head=head, separator=sep)
                break
        raise InvalidCommitRange(value)

    def __str__(self) -> str:
        return f"{self.base}{self.separator}{self.head}"


@dataclass(frozen=True)
class ModifiedFileSet:
    paths: tuple[str, ...] = ()

    @classmethod
    def from_lines(cls, lines: list[str]) -> "ModifiedFileSet":
        seen: dict[str, None] = {}
        for line in lines:
            p = line.strip()
            if p:
                seen.setdefault(p, None)
        return cls(paths=tuple(seen))

    def __len__(self) -> int:
        return len(self.paths)

    def __iter__(self):
        return iter(self.paths)

    def __bool__(self) -> bool:
        return bool(self.paths)

    def partition(self, prefix: str) -> tuple[list[str], list[str]]:
        """Split into (paths outside ``prefix``, paths under ``prefix``), keeping diff order."""
        outside: list[str] = []
        inside: list[str] = []
        for path in self.paths:
            (inside if path.startswith(prefix) else outside).append(path)
        return outside, inside


@dataclass(frozen=True)
class Resolution:
    commit_range: CommitRange | None = None
    files: ModifiedFileSet = field(default_factory=ModifiedFileSet)
    skip_reason: str | None = None
    local_ref: str | None = None
    upstream_ref: str | None = None

    @property
    def skipped(self) -> bool:
        return self.skip_reason is not None

    @classmethod
    def skip(cls, reason: str) -> "Resolution":
        return cls(skip_reason=reason)


@dataclass(frozen=True)
class Violation:
    path: str
    line: int
    column: int
    code: str
    text: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def __str__(self) -> str:
        return f"{self.path}:{self.line}:{self.column}: {self.code} {self.text}"


@dataclass(frozen=True)
class GroupResult:
    name: str
    files: list[str]
    violations: list[Violation] = field(default_factory=list)
    filtered_out: int = 0
    config: str | None = None

    @property
    def passed(self) -> bool:
        return not self.violations

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "config": self.config,
            "files": list(self.files),
            "filtered_out": self.filtered_out,
            "violations": [v.to_dict() for v in self.violations],
        }


@dataclass(frozen=True)
class RunReport:
    outcome: str
    context: ExecutionContext | None = None
    commit_range: CommitRange | None = None
    files: ModifiedFileSet = field(default_factory=ModifiedFileSet)
    groups: list[GroupResult] = field(default_factory=list)
    message: str = ""

    def __post_init__(self) -> None:
        if self.outcome not in OUTCOMES:
            raise ValueError(f"Unknown outcome '{self.outcome}'; expected one of {', '.join(OUTCOMES)}")

    @property
    def violations(self) -> list[Violation]:
        return sort_violations([v for g in self.groups for v in g.violations])

    @property
    def exit_code(self) -> int:
        if self.outcome == "violations":
            return 1
        if self.outcome == "error":
            return 2
        return 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "outcome": self.outcome,
            "message": self.message,
            "context": self.context.to_dict() if self.context else None,
            "commit_range": str(self.commit_range) if self.commit_range else None,
            "files": list(self.files),
            "groups": [g.to_dict() for g in self.groups],
            "violations_total": len(self.violations),
        }


def sort_violations(violations: list[Violation]) -> list[Violation]:
    return sorted(violations, key=lambda v: (v.path, v.line, v.column, v.code))
