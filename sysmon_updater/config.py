"""Explicit settings passed into the orchestrator.

Settings come from an optional YAML file and are overridden field by field
from the command line. Nothing is read from process-wide state at run time;
even the base directory for relative source paths is carried here.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path

import yaml

from sysmon_updater.engine import DEFAULT_HASH_ALGORITHM
from sysmon_updater.errors import UpdaterError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class UpdaterConfig:
    """Everything a run needs to know about where things are."""

    executable: str = "Sysmon64.exe"
    config_file: str = "sysmonconfig.xml"
    source_dir: str = "."
    driver_name: str = "SysmonDrv"
    default_hash_algorithm: str = DEFAULT_HASH_ALGORITHM
    eula_flag: str = "-accepteula"
    log_dir: str | None = None
    log_level: str = "INFO"
    agent_timeout: float | None = None

    @property
    def executable_name(self) -> str:
        """Bare file name of the agent, as registered with the OS."""
        return Path(self.executable.replace("\\", "/")).name

    @property
    def source_executable(self) -> Path:
        return resolve_source_path(self.executable, self.source_dir)

    @property
    def source_config(self) -> Path:
        return resolve_source_path(self.config_file, self.source_dir)

    def with_overrides(self, **overrides) -> UpdaterConfig:
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def resolve_source_path(hint: str | Path, base_dir: str | Path) -> Path:
    """Resolve a source path hint: absolute as given, relative against ``base_dir``.

    Existence is not checked here; a missing file surfaces as NotFound when
    the artifact is inspected.
    """
    path = Path(hint)
    if path.is_absolute():
        return path
    return Path(base_dir) / path


def load_config(path: str | Path) -> UpdaterConfig:
    """Load settings from a YAML file.

    A relative ``source_dir`` (or none at all) is taken relative to the
    settings file's own directory.
    """
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise UpdaterError(f"Settings file not found: {path}") from None
    except yaml.YAMLError as e:
        raise UpdaterError(f"Settings file {path} is not valid YAML: {e}") from e

    if not isinstance(data, dict):
        raise UpdaterError(f"Settings file {path} must contain a mapping")

    known = {f.name for f in fields(UpdaterConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise UpdaterError(f"Unknown settings in {path}: {', '.join(unknown)}")

    if "log_level" in data:
        level = str(data["log_level"]).upper()
        if level not in LOG_LEVELS:
            raise UpdaterError(
                f"Invalid log_level {data['log_level']!r} in {path} "
                f"(expected one of: {', '.join(LOG_LEVELS)})"
            )
        data["log_level"] = level

    base = path.resolve().parent
    source_dir = Path(data.get("source_dir") or ".")
    data["source_dir"] = str(source_dir if source_dir.is_absolute() else base / source_dir)

    return UpdaterConfig(**data)
