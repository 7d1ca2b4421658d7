"""Read-only views of the world a reconciliation pass compares.

- artifacts: the source executable and config on the shared location
- installed: the agent service and the registry values it publishes
"""
