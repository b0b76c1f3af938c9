from nasa_gateway.store.sqlite_store import SqliteStore

__all__ = ["SqliteStore"]
