"""sysmon-updater — keep a host's monitoring agent in line with its source artifacts."""

__version__ = "0.1.0"
