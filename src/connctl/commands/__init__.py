"""Built-in CLI sub-commands for connctl.

* :mod:`~connctl.commands.connections` -- add, update, remove and select
  connections.
* :mod:`~connctl.commands.security` -- the ``sectoken`` and ``seckeyring``
  groups.
* :mod:`~connctl.commands.request` -- send an authenticated request.

Multi-command groups export a :class:`typer.Typer` sub-application; single
commands export a plain callback registered directly on the root app.
"""
