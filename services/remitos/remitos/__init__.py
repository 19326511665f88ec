"""Core package for the remitos listing and signing service."""

__all__ = [
    "config",
    "models",
    "merger",
    "query_builder",
    "db",
    "storage",
    "report",
    "schema",
    "app",
    "fetcher",
    "config_store",
    "controller",
    "cli",
]
