import logging

from salon.config import StorageConfig
from salon.storage.base import BookingQuery, PaymentQuery, Store
from salon.storage.memory import build_memory_store

logger = logging.getLogger(__name__)


def build_store(config: StorageConfig) -> Store:
    """Pick the MongoDB store when a URL is configured, else the in-memory one."""
    if config.mongodb_url:
        from salon.storage.mongo import build_mongo_store

        return build_mongo_store(config)
    logger.warning("MONGODB_URL is not set; using the in-memory store")
    return build_memory_store()


__all__ = ["BookingQuery", "PaymentQuery", "Store", "build_store", "build_memory_store"]
