from kasama_ai.cache.fingerprint import fingerprint, normalize
from kasama_ai.cache.semantic import CacheEntry, SemanticCache

__all__ = ["fingerprint", "normalize", "CacheEntry", "SemanticCache"]
