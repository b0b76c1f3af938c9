from nasa_gateway.cache.freshness import FreshnessCache, MemoryFreshnessCache
from nasa_gateway.cache.sqlite_cache import SqliteFreshnessCache

__all__ = ["FreshnessCache", "MemoryFreshnessCache", "SqliteFreshnessCache"]
