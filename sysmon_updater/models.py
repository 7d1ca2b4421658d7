"""Core data models for a reconciliation pass.

All of these are transient snapshots, rebuilt from live OS and filesystem
state on every invocation. Nothing here is cached or persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable


class ServiceStatus(Enum):
    """Run status of the agent service. Advisory only."""

    RUNNING = "running"
    STOPPED = "stopped"
    OTHER = "other"


class StartType(Enum):
    """Start type of the agent service. Advisory only."""

    AUTOMATIC = "automatic"
    MANUAL = "manual"
    DISABLED = "disabled"
    OTHER = "other"


class ActionKind(Enum):
    """What a reconciliation pass decided to do."""

    NOOP = "noop"
    INSTALL = "install"  # Fresh install on a host without the agent
    REINSTALL = "reinstall"  # Uninstall, then install with the source config
    UPDATE_CONFIG = "update_config"
    UNINSTALL = "uninstall"


# --- Installed state ---


@dataclass(frozen=True)
class ConfigHashRecord:
    """The (algorithm, hash) pair the agent publishes after loading a config."""

    algorithm: str
    hash: str

    @classmethod
    def parse(cls, value: str) -> ConfigHashRecord | None:
        """Parse an ``ALGORITHM=HEXHASH`` registry string.

        Returns None when the value does not have that shape.
        """
        algorithm, sep, digest = (value or "").strip().partition("=")
        if not sep or not algorithm.strip() or not digest.strip():
            return None
        return cls(algorithm=algorithm.strip(), hash=digest.strip())

    def __str__(self) -> str:
        return f"{self.algorithm}={self.hash}"


@dataclass
class InstalledAgentState:
    """What the OS currently reports about the installed agent."""

    exists: bool
    service_status: ServiceStatus = ServiceStatus.OTHER
    start_type: StartType = StartType.OTHER
    image_path: str = ""
    image_modified: float | None = None
    config_hash_record: ConfigHashRecord | None = None


# --- Source artifacts ---


@dataclass
class SourceArtifacts:
    """The authoritative executable and config, with paths already resolved.

    The config hash is computed lazily through ``hasher`` so that a pass that
    never needs it (fresh install, stale binary) never reads the file.
    """

    executable_path: str
    executable_modified: float
    config_path: str
    hasher: Callable[[str, str], str] | None = field(default=None, repr=False)

    def config_hash(self, algorithm: str) -> str:
        return self.hasher(self.config_path, algorithm)


# --- Request / decision ---


@dataclass(frozen=True)
class ReconcileRequest:
    """Operator overrides, mapped 1:1 from the command line."""

    uninstall: bool = False
    force_install: bool = False
    force_config: bool = False


@dataclass(frozen=True)
class Action:
    """The single outcome of a reconciliation pass."""

    kind: ActionKind
    reason: str = ""
    executable_path: str = ""
    config_path: str = ""

    @property
    def is_disruptive(self) -> bool:
        return self.kind in (ActionKind.REINSTALL, ActionKind.UNINSTALL)


# --- Outcome ---


@dataclass
class Invocation:
    """One completed call to the agent executable."""

    command: list[str]
    exit_code: int
    output: str = ""
    duration_ms: int = 0


@dataclass
class RunReport:
    """Outcome of a full orchestrated run."""

    action: Action
    installed: InstalledAgentState | None = None
    sources: SourceArtifacts | None = None
    invocations: list[Invocation] = field(default_factory=list)
    dry_run: bool = False
    config_verified: bool | None = None

    @property
    def applied(self) -> bool:
        return not self.dry_run and self.action.kind != ActionKind.NOOP

    def summary(self) -> str:
        lines = [
            f"Action:  {self.action.kind.value}",
            f"Reason:  {self.action.reason}",
        ]
        if self.dry_run:
            lines.append("Mode:    dry run (nothing applied)")
        for inv in self.invocations:
            lines.append(f"Ran:     {' '.join(inv.command)} -> {inv.exit_code} ({inv.duration_ms}ms)")
        if self.config_verified is not None:
            lines.append(f"Config:  {'recorded hash matches source' if self.config_verified else 'recorded hash does NOT match source'}")
        return "\n".join(lines)
