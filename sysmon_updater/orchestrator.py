"""Sequence one reconciliation run end to end.

uninstall shortcut -> installed state -> source artifacts -> decide -> apply
-> advisory post-apply check. Any failure before the check aborts the run;
nothing later is attempted once an earlier stage has raised.
"""

from __future__ import annotations

import logging

from sysmon_updater.config import UpdaterConfig
from sysmon_updater.driver import AgentDriver
from sysmon_updater.engine import decide
from sysmon_updater.errors import UpdaterError
from sysmon_updater.inspectors.artifacts import ArtifactInspector
from sysmon_updater.inspectors.installed import InstalledStateInspector
from sysmon_updater.models import (
    ActionKind,
    InstalledAgentState,
    ReconcileRequest,
    RunReport,
    SourceArtifacts,
)

logger = logging.getLogger(__name__)

_CONFIG_APPLYING = (ActionKind.INSTALL, ActionKind.REINSTALL, ActionKind.UPDATE_CONFIG)


class Updater:
    """Brings the installed agent in line with its source artifacts."""

    def __init__(
        self,
        config: UpdaterConfig,
        inspector: InstalledStateInspector,
        artifacts: ArtifactInspector | None = None,
        driver: AgentDriver | None = None,
    ):
        self.config = config
        self.inspector = inspector
        self.artifacts = artifacts or ArtifactInspector()
        self.driver = driver or AgentDriver(
            config.executable_name,
            eula_flag=config.eula_flag,
            timeout=config.agent_timeout,
        )

    def run(self, request: ReconcileRequest = ReconcileRequest(), dry_run: bool = False) -> RunReport:
        """Run one reconciliation pass and report what happened."""
        if request.uninstall:
            # Never blocked by missing sources or a half-installed agent
            action = decide(None, None, request)
            logger.info("Decision: %s (%s)", action.kind.value, action.reason)
            report = RunReport(action=action, dry_run=dry_run)
            if not dry_run:
                report.invocations = self.driver.apply(action)
            return report

        installed = self.inspector.query()
        _log_installed(installed)

        sources = self.artifacts.inspect_sources(
            self.config.source_executable, self.config.source_config
        )
        logger.info(
            "Source executable %s, config %s", sources.executable_path, sources.config_path
        )

        action = decide(
            installed,
            sources,
            request,
            default_algorithm=self.config.default_hash_algorithm,
        )
        logger.info("Decision: %s (%s)", action.kind.value, action.reason)

        report = RunReport(action=action, installed=installed, sources=sources, dry_run=dry_run)
        if dry_run:
            return report

        report.invocations = self.driver.apply(action)
        if action.kind in _CONFIG_APPLYING:
            report.config_verified = self._verify_config(sources)
        return report

    def _verify_config(self, sources: SourceArtifacts) -> bool | None:
        """Check the agent now records the source config's hash.

        Advisory only: the outcome is reported and logged, never raised.
        """
        try:
            after = self.inspector.query()
            record = after.config_hash_record
            if record is None:
                logger.warning("Agent published no config hash after applying config")
                return False
            matches = sources.config_hash(record.algorithm) == record.hash
        except (UpdaterError, OSError) as e:
            logger.warning("Could not verify applied config: %s", e)
            return None

        if not matches:
            logger.warning(
                "Agent records %s but source config hashes differently", record
            )
        return matches


def _log_installed(state: InstalledAgentState) -> None:
    if not state.exists:
        logger.info("Agent service is not installed")
        return
    logger.info(
        "Agent service is %s (start type %s), image %s",
        state.service_status.value,
        state.start_type.value,
        state.image_path,
    )
    if state.config_hash_record:
        logger.info("Recorded config hash %s", state.config_hash_record)
    else:
        logger.info("No config hash recorded")
