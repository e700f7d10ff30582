from .keys import logical_key, normalize_key
from .redis_cache import RedisCache

__all__ = ["RedisCache", "normalize_key", "logical_key"]
