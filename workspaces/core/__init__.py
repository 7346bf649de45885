"""Workspace lifecycle core: store, migrations, lifecycle, maintenance."""
