"""Error taxonomy for a reconciliation run.

Every error aborts the current run. Nothing here is retried: each scheduled
invocation is its own fresh attempt.
"""

from __future__ import annotations


class UpdaterError(Exception):
    """Base class for all updater failures."""


class NotFound(UpdaterError, FileNotFoundError):
    """A required source file is missing."""

    def __init__(self, path: str):
        super().__init__(f"Required file not found: {path}")
        self.path = path


class Unreadable(UpdaterError):
    """A required source file exists but cannot be read (locked, denied, a directory)."""

    def __init__(self, path: str, reason: object):
        super().__init__(f"Cannot read {path}: {reason}")
        self.path = path


class InconsistentState(UpdaterError):
    """The agent service exists but its registered binary cannot be read."""


class HashAlgorithmMismatch(UpdaterError, ValueError):
    """A hash was requested under an algorithm we cannot compute."""

    def __init__(self, algorithm: str, supported: list[str]):
        super().__init__(
            f"Unsupported hash algorithm {algorithm!r} "
            f"(supported: {', '.join(supported)})"
        )
        self.algorithm = algorithm


class AgentInvocationFailed(UpdaterError):
    """The agent executable exited with a non-zero status."""

    def __init__(self, command: list[str], exit_code: int, output: str = ""):
        super().__init__(
            f"Agent command {' '.join(command)!r} failed with exit code {exit_code}"
        )
        self.command = command
        self.exit_code = exit_code
        self.output = output
