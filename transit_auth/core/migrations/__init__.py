"""Schema migrations for the SQLite auth store."""

from transit_auth.core.migrations.runner import apply_migrations

__all__ = ["apply_migrations"]
