from __future__ import annotations


class DifflintError(RuntimeError):
    pass


class ResolutionError(DifflintError):
    """The commit range or the files changed in it could not be determined."""


class GitCommandError(ResolutionError):
    def __init__(self, command: list[str], returncode: int, stderr: str) -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"git command failed ({returncode}): {' '.join(command)}"
            + (f"\n{stderr}" if stderr else "")
        )


class NoCommonAncestor(ResolutionError):
    def __init__(self, local_ref: str, upstream_ref: str, detail: str = "") -> None:
        self.local_ref = local_ref
        self.upstream_ref = upstream_ref
        message = f"No common ancestor found for '{local_ref}' and '{upstream_ref}'."
        if detail:
            message = f"{message} {detail}"
        super().__init__(message)


class MissingRemote(ResolutionError):
    def __init__(self, project: str, reason: str = "") -> None:
        self.project = project
        super().__init__(
            f"No git remote points at '{project}'" + (f": {reason}" if reason else "")
        )


class FetchFailure(ResolutionError):
    def __init__(self, remote: str, refspec: str, stderr: str = "") -> None:
        self.remote = remote
        self.refspec = refspec
        self.stderr = stderr
        super().__init__(
            f"Failed to fetch '{refspec}' from '{remote}'. "
            f"{stderr or 'Check the remote URL and network access.'}"
        )


class ResolutionTimeout(ResolutionError):
    def __init__(self, command: list[str], seconds: float) -> None:
        self.command = command
        self.seconds = seconds
        super().__init__(f"git command timed out after {seconds:g}s: {' '.join(command)}")


class InvalidCommitRange(ResolutionError):
    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(f"Invalid commit range '{value}' (expected <base>..<head> or <base>...<head>)")


class LinterError(DifflintError):
    """flake8 could not be run or exited abnormally."""
