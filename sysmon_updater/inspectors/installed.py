"""Installed state inspection: the agent's service record and registry values.

The OS reads are Windows-only and sit behind the InstalledStateInspector
protocol. Turning the raw values into an InstalledAgentState is done by
build_installed_state(), which touches nothing but the filesystem.
"""

from __future__ import annotations

import logging
import os
import sys
from importlib import import_module
from pathlib import PureWindowsPath
from typing import Protocol

from sysmon_updater.errors import InconsistentState, UpdaterError
from sysmon_updater.models import (
    ConfigHashRecord,
    InstalledAgentState,
    ServiceStatus,
    StartType,
)

logger = logging.getLogger(__name__)

SERVICES_KEY = r"SYSTEM\CurrentControlSet\Services"
IMAGE_PATH_VALUE = "ImagePath"
CONFIG_HASH_VALUE = "ConfigHash"

ERROR_SERVICE_DOES_NOT_EXIST = 1060

# win32service constants, kept here so the mapping is importable everywhere
_STATUS_MAP = {
    4: ServiceStatus.RUNNING,  # SERVICE_RUNNING
    1: ServiceStatus.STOPPED,  # SERVICE_STOPPED
}
_START_TYPE_MAP = {
    2: StartType.AUTOMATIC,  # SERVICE_AUTO_START
    3: StartType.MANUAL,  # SERVICE_DEMAND_START
    4: StartType.DISABLED,  # SERVICE_DISABLED
}


class InstalledStateInspector(Protocol):
    """Anything that can report the currently installed agent."""

    def query(self) -> InstalledAgentState: ...


def service_name_for(executable: str) -> str:
    """Service name the agent registers under: its executable's stem."""
    return PureWindowsPath(executable).stem


def normalize_image_path(value: str) -> str:
    """Strip quoting, NT namespace prefixes and environment references."""
    path = (value or "").strip().strip('"')
    if path.startswith("\\??\\"):
        path = path[4:]
    return os.path.expandvars(path)


def build_installed_state(
    service_exists: bool,
    status_code: int | None = None,
    start_type_code: int | None = None,
    image_path_value: str | None = None,
    config_hash_value: str | None = None,
) -> InstalledAgentState:
    """Assemble an InstalledAgentState from raw service and registry values.

    Raises InconsistentState when the service exists but its ImagePath is
    missing or names a file that cannot be stat'd.
    """
    if not service_exists:
        return InstalledAgentState(exists=False)

    if not image_path_value:
        raise InconsistentState(
            f"Agent service exists but its {IMAGE_PATH_VALUE} registry value is missing"
        )

    image_path = normalize_image_path(image_path_value)
    try:
        image_modified = os.stat(image_path).st_mtime
    except OSError as e:
        raise InconsistentState(
            f"Agent service exists but its registered binary {image_path!r} "
            f"cannot be read: {e}"
        ) from e

    record = None
    if config_hash_value:
        record = ConfigHashRecord.parse(config_hash_value)
        if record is None:
            logger.warning(
                "Ignoring malformed %s value %r", CONFIG_HASH_VALUE, config_hash_value
            )

    return InstalledAgentState(
        exists=True,
        service_status=_STATUS_MAP.get(status_code, ServiceStatus.OTHER),
        start_type=_START_TYPE_MAP.get(start_type_code, StartType.OTHER),
        image_path=image_path,
        image_modified=image_modified,
        config_hash_record=record,
    )


def _windows_modules():
    if sys.platform != "win32":
        raise UpdaterError("Querying the installed agent requires Windows")
    return (
        import_module("pywintypes"),
        import_module("win32service"),
        import_module("win32serviceutil"),
        import_module("winreg"),
    )


class WindowsStateInspector:
    """Reads the agent's service record and registry values via pywin32."""

    def __init__(self, executable: str, driver_name: str):
        self.service_name = service_name_for(executable)
        self.driver_name = driver_name

    def query(self) -> InstalledAgentState:
        pywintypes, win32service, win32serviceutil, winreg = _windows_modules()

        try:
            status = win32serviceutil.QueryServiceStatus(self.service_name)
        except pywintypes.error as e:
            if e.winerror == ERROR_SERVICE_DOES_NOT_EXIST:
                logger.info("Service %s is not installed", self.service_name)
                return build_installed_state(service_exists=False)
            raise UpdaterError(
                f"Cannot query service {self.service_name}: {e}"
            ) from e

        try:
            start_type = self._query_start_type(win32service)
        except pywintypes.error as e:
            raise UpdaterError(
                f"Cannot read configuration of service {self.service_name}: {e}"
            ) from e

        service_key = f"{SERVICES_KEY}\\{self.service_name}"
        try:
            image_path = self._read_value(winreg, service_key, IMAGE_PATH_VALUE)
        except OSError as e:
            raise InconsistentState(
                f"Agent service exists but {service_key}\\{IMAGE_PATH_VALUE} "
                f"cannot be read: {e}"
            ) from e

        parameters_key = f"{SERVICES_KEY}\\{self.driver_name}\\Parameters"
        try:
            config_hash = self._read_value(winreg, parameters_key, CONFIG_HASH_VALUE)
        except OSError as e:
            raise UpdaterError(
                f"Cannot read {parameters_key}\\{CONFIG_HASH_VALUE}: {e}"
            ) from e

        return build_installed_state(
            service_exists=True,
            status_code=status[1],
            start_type_code=start_type,
            image_path_value=image_path,
            config_hash_value=config_hash,
        )

    def _query_start_type(self, win32service) -> int:
        scm = win32service.OpenSCManager(None, None, win32service.SC_MANAGER_CONNECT)
        try:
            handle = win32service.OpenService(
                scm, self.service_name, win32service.SERVICE_QUERY_CONFIG
            )
            try:
                return win32service.QueryServiceConfig(handle)[1]
            finally:
                win32service.CloseServiceHandle(handle)
        finally:
            win32service.CloseServiceHandle(scm)

    @staticmethod
    def _read_value(winreg, key: str, name: str) -> str | None:
        """Read a string value under HKLM, or None when key or value is absent.

        Any other OSError (access denied, for one) propagates.
        """
        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, key) as handle:
                value, _ = winreg.QueryValueEx(handle, name)
        except FileNotFoundError:
            return None
        return str(value) if value is not None else None
