from .base import BaseStore
from .memory import InMemoryStore
from .redis import RedisStore


def get_store(store_type: str, config: dict) -> BaseStore:
    """
    Factory function to create store instances.

    Args:
        store_type: Type of store ('memory', 'redis')
        config: Configuration dict with store-specific settings

    Example config:
        {
            'url': 'redis://localhost:6379',
            'key_prefix': 'revtracker:'
        }
    """
    store_type = store_type.lower()

    if store_type == 'memory':
        return InMemoryStore()
    elif store_type == 'redis':
        return RedisStore(
            url=config.get('url', 'redis://localhost:6379'),
            key_prefix=config.get('key_prefix', 'revtracker:'),
            max_connections=config.get('max_connections', 10)
        )
    else:
        raise ValueError(f"Unsupported store type: {store_type}. Supported: 'memory', 'redis'")


__all__ = ['BaseStore', 'InMemoryStore', 'RedisStore', 'get_store']
