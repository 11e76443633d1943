"""Built-in CLI sub-commands for blobcache.

* :mod:`~blobcache.commands.cache` -- ``get``, ``clear``, ``stats`` and
  ``list``, registered directly on the root app.
* :mod:`~blobcache.commands.config` -- the ``config`` group (``show``,
  ``set``, ``reset``).
"""
