"""Workspace operations on top of the store.

``repository`` holds the SQL; ``lifecycle`` and ``maintenance`` hold the
rules.  Managers take a session factory, raise domain exceptions from
``workspaces.core.errors`` and never exit the process -- mapping errors to
exit codes is the CLI's responsibility.
"""
