"""Agent driver — apply an Action by invoking the agent executable.

Every call blocks until the agent exits; its registry values are only
trustworthy afterwards. A non-zero exit raises AgentInvocationFailed and is
never retried: repeating a disruptive step without re-reconciling is unsafe.
"""

from __future__ import annotations

import logging
import subprocess
import time
from typing import Callable

from sysmon_updater.errors import AgentInvocationFailed, NotFound
from sysmon_updater.models import Action, ActionKind, Invocation

logger = logging.getLogger(__name__)

INSTALL_VERB = "-i"
UNINSTALL_VERB = "-u"
CONFIG_VERB = "-c"

# Reported when a bounded invocation is cut off
TIMEOUT_EXIT_CODE = -1


class AgentDriver:
    """Runs the agent's install, uninstall and config-load verbs."""

    def __init__(
        self,
        executable_name: str,
        eula_flag: str = "-accepteula",
        timeout: float | None = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        """Initialize the driver.

        Args:
            executable_name: Name the installed agent is registered under.
                             Uninstall always goes through this, never the
                             source copy.
            eula_flag: Flag accepting the agent's EULA, passed on every call.
            timeout: Optional bound on each invocation; None waits forever.
            runner: subprocess.run compatible callable.
        """
        self.executable_name = executable_name
        self.eula_flag = eula_flag
        self.timeout = timeout
        self._runner = runner

    def apply(self, action: Action) -> list[Invocation]:
        """Carry out ``action`` and return the invocations made, in order."""
        if action.kind == ActionKind.NOOP:
            return []
        if action.kind == ActionKind.UNINSTALL:
            return [self.uninstall()]
        if action.kind == ActionKind.INSTALL:
            return [self.install(action.executable_path, action.config_path)]
        if action.kind == ActionKind.REINSTALL:
            # A failed uninstall raises before the install is attempted
            done = [self.uninstall()]
            done.append(self.install(action.executable_path, action.config_path))
            return done
        if action.kind == ActionKind.UPDATE_CONFIG:
            return [self.load_config(action.executable_path, action.config_path)]
        raise ValueError(f"Unknown action kind: {action.kind}")

    def install(self, executable_path: str, config_path: str) -> Invocation:
        return self._invoke([executable_path, INSTALL_VERB, config_path, self.eula_flag])

    def uninstall(self) -> Invocation:
        return self._invoke([self.executable_name, UNINSTALL_VERB, self.eula_flag])

    def load_config(self, executable_path: str, config_path: str) -> Invocation:
        return self._invoke([executable_path, CONFIG_VERB, config_path, self.eula_flag])

    def _invoke(self, command: list[str]) -> Invocation:
        logger.info("Running %s", " ".join(command))
        start = time.monotonic()
        try:
            proc = self._runner(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            raise NotFound(command[0]) from None
        except subprocess.TimeoutExpired:
            raise AgentInvocationFailed(
                command, TIMEOUT_EXIT_CODE, f"Timed out after {self.timeout}s"
            ) from None
        duration = int((time.monotonic() - start) * 1000)
        output = ((proc.stdout or "") + (proc.stderr or ""))[:5000]
        if output.strip():
            logger.debug("Agent output:\n%s", output.rstrip())

        if proc.returncode != 0:
            raise AgentInvocationFailed(command, proc.returncode, output)

        logger.info("Agent exited 0 after %dms", duration)
        return Invocation(
            command=command,
            exit_code=proc.returncode,
            output=output,
            duration_ms=duration,
        )
