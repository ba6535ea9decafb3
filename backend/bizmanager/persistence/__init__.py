# Overview: Persistence port realizations and the factory that picks one from config.

from .base import (
    ChangeNotification,
    PersistencePort,
    Subscription,
    EVENT_DELETE,
    EVENT_INSERT,
    EVENT_UPDATE,
)
from .memory import MemoryBackend, MemoryPersistencePort
from .json_store import LocalJsonPort
from .sql_store import SqlPersistencePort
from .writer import PersistenceWriter, WriteOperation

BACKEND_MEMORY = "memory"
BACKEND_JSON = "json"
BACKEND_SQL = "sql"


def build_port(config, app=None) -> PersistencePort:
    """Create the persistence port named by config["PERSISTENCE_BACKEND"]."""
    backend = config.get("PERSISTENCE_BACKEND", BACKEND_JSON)
    if backend == BACKEND_MEMORY:
        return MemoryPersistencePort()
    if backend == BACKEND_JSON:
        return LocalJsonPort(config.get("LOCAL_STORE_DIR", "instance/data"))
    if backend == BACKEND_SQL:
        return SqlPersistencePort(
            app,
            attempts=int(config.get("PERSISTENCE_RETRY_ATTEMPTS", 3)),
            backoff_base=float(config.get("PERSISTENCE_RETRY_BACKOFF", 0.1)),
        )
    raise ValueError(f"Unknown PERSISTENCE_BACKEND: {backend}")


__all__ = [
    "ChangeNotification",
    "PersistencePort",
    "Subscription",
    "EVENT_DELETE",
    "EVENT_INSERT",
    "EVENT_UPDATE",
    "MemoryBackend",
    "MemoryPersistencePort",
    "LocalJsonPort",
    "SqlPersistencePort",
    "PersistenceWriter",
    "WriteOperation",
    "build_port",
]
