import time
from threading import Lock


class TTLCache:
    """In-process cache: one dict, one lock, one TTL for every key."""

    def __init__(self, ttl=300):
        self.cache = {}
        self.ttl = ttl
        self.lock = Lock()

    def get(self, key):
        now = time.time()
        with self.lock:
            entry = self.cache.get(key)
            if entry and now - entry["timestamp"] < self.ttl:
                return entry["data"]
            return None

    def set(self, key, data):
        with self.lock:
            self.cache[key] = {"data": data, "timestamp": time.time()}
        return data

    def get_or_load(self, key, loader, force=False):
        """
        Return the cached value for key, or call loader() and cache its result.
        Loader errors propagate and leave the previous entry untouched.
        """
        if not force:
            hit = self.get(key)
            if hit is not None:
                return hit
        return self.set(key, loader())

    def invalidate(self, key):
        with self.lock:
            self.cache.pop(key, None)

    def clear(self):
        with self.lock:
            self.cache.clear()
