"""Connection registry: the persisted list of target deployments.

- :class:`ConnectionRegistry` -- load, add, update, remove and reset
  connections stored in ``connections.json``.
- :func:`~connctl.connections.migrations.apply_migrations` -- forward-only
  schema upgrades run by :meth:`ConnectionRegistry.initialize`.
- :func:`~connctl.connections.gatekeeper.get_environment` -- discovery of a
  deployment's authorization parameters.
"""

from connctl.connections.registry import ConnectionRegistry, generate_connection_id

__all__ = ["ConnectionRegistry", "generate_connection_id"]
