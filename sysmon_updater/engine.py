"""Reconciliation engine — decide the one action a pass should take.

This is the only place policy lives. decide() is a pure function of the two
snapshots and the operator request: no OS calls, no retained history. The
only I/O it can trigger is hashing the source config, through the hasher
attached to SourceArtifacts, and only when the comparison reaches that step.

Order of precedence:
1. Explicit uninstall (inspects nothing)
2. Agent not installed -> fresh install with the source config
3. Forced reinstall, or source binary strictly newer than installed image
4. Forced config update
5. Config hash comparison against the agent's recorded hash
"""

from __future__ import annotations

from sysmon_updater.errors import InconsistentState
from sysmon_updater.models import (
    Action,
    ActionKind,
    InstalledAgentState,
    ReconcileRequest,
    SourceArtifacts,
)

DEFAULT_HASH_ALGORITHM = "SHA256"


def decide(
    current: InstalledAgentState | None,
    source: SourceArtifacts | None,
    request: ReconcileRequest = ReconcileRequest(),
    default_algorithm: str = DEFAULT_HASH_ALGORITHM,
) -> Action:
    """Choose exactly one Action for this pass.

    Args:
        current: Installed agent snapshot. Unused when uninstalling.
        source: Source artifact snapshot. Unused when uninstalling.
        request: Operator overrides (uninstall / force install / force config).
        default_algorithm: Hash algorithm used when the agent has no record.
    """
    if request.uninstall:
        return Action(ActionKind.UNINSTALL, reason="Uninstall requested")

    if current is None or source is None:
        raise ValueError("Installed state and source artifacts are required unless uninstalling")

    if not current.exists:
        return _with_sources(ActionKind.INSTALL, source, "Agent is not installed")

    if request.force_install:
        return _with_sources(ActionKind.REINSTALL, source, "Reinstall forced")

    if current.image_modified is None:
        raise InconsistentState(
            f"Installed image {current.image_path!r} has no readable modification time"
        )

    if source.executable_modified > current.image_modified:
        return _with_sources(
            ActionKind.REINSTALL,
            source,
            "Source executable is newer than the installed image",
        )

    if request.force_config:
        return _with_sources(ActionKind.UPDATE_CONFIG, source, "Config update forced")

    record = current.config_hash_record
    algorithm = record.algorithm if record else default_algorithm
    source_hash = source.config_hash(algorithm)

    if record is None:
        return _with_sources(
            ActionKind.UPDATE_CONFIG, source, "Agent has no recorded config hash"
        )

    if source_hash != record.hash:
        return _with_sources(
            ActionKind.UPDATE_CONFIG,
            source,
            f"Config hash changed ({algorithm} {record.hash} -> {source_hash})",
        )

    return Action(ActionKind.NOOP, reason="Executable and config are current")


def _with_sources(kind: ActionKind, source: SourceArtifacts, reason: str) -> Action:
    return Action(
        kind,
        reason=reason,
        executable_path=source.executable_path,
        config_path=source.config_path,
    )
