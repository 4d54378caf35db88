"""
Rate Limiter pour protection contre les attaques de force brute
Fenêtre fixe par (endpoint, client), stockée dans Redis si REDIS_URL est défini,
en mémoire du processus sinon
"""
import hashlib
import json
import logging
import os
import time
from typing import Dict, Optional

import redis
from fastapi import Request

from constants import RATE_LIMITS
from errors import RateLimitError

logger = logging.getLogger(__name__)


class MemoryRateLimitStore:
    """Compteurs en mémoire locale (un seul processus, dev et tests)"""

    def __init__(self):
        self._data: Dict[str, Dict] = {}

    def get(self, key: str) -> Optional[Dict]:
        entry = self._data.get(key)
        if entry and entry["expires"] <= time.time():
            self._data.pop(key, None)
            return None
        return entry

    def set(self, key: str, data: Dict, ttl: int):
        data["expires"] = time.time() + ttl
        self._data[key] = data
        # Nettoyage des fenêtres expirées
        now = time.time()
        self._data = {k: v for k, v in self._data.items() if v["expires"] > now}


class RedisRateLimitStore:
    """Compteurs partagés entre workers via Redis"""

    def __init__(self, url: str):
        self.client = redis.from_url(url)

    def get(self, key: str) -> Optional[Dict]:
        data = self.client.get(key)
        return json.loads(data) if data else None

    def set(self, key: str, data: Dict, ttl: int):
        self.client.setex(key, ttl, json.dumps(data))


class RateLimiter:
    """Limiteur de taux par endpoint"""

    def __init__(self, store=None, limits: Dict[str, Dict] = None, enabled: bool = True):
        self.store = store or MemoryRateLimitStore()
        self.limits = limits or RATE_LIMITS
        self.enabled = enabled

    @classmethod
    def from_env(cls) -> "RateLimiter":
        redis_url = os.getenv("REDIS_URL")
        store = RedisRateLimitStore(redis_url) if redis_url else MemoryRateLimitStore()
        enabled = os.getenv("RATE_LIMIT_ENABLED", "true").lower() not in ("0", "false", "no")
        return cls(store=store, enabled=enabled)

    def get_client_id(self, request: Request) -> str:
        """IP + empreinte du User-Agent"""
        ip = request.client.host if request.client else "unknown"
        user_agent = request.headers.get("user-agent", "")[:100]
        fingerprint = hashlib.sha256(user_agent.encode("utf-8")).hexdigest()[:8]
        return f"{ip}:{fingerprint}"

    def _get_key(self, client_id: str, endpoint: str) -> str:
        return f"rate_limit:{endpoint}:{client_id}"

    def hit(self, client_id: str, endpoint: str, now: float = None):
        """Compte une requête, lève RateLimitError au-delà de la limite"""
        if not self.enabled or endpoint not in self.limits:
            return

        limit_config = self.limits[endpoint]
        key = self._get_key(client_id, endpoint)
        current_time = now if now is not None else time.time()

        try:
            data = self.store.get(key)
        except redis.RedisError as e:
            # Redis indisponible : la requête passe
            logger.error("Rate limiter indisponible: %s", e)
            return

        if data is None or current_time - data["window_start"] >= limit_config["window"]:
            data = {"count": 1, "window_start": current_time}
        else:
            data["count"] += 1

        try:
            self.store.set(key, data, limit_config["window"])
        except redis.RedisError as e:
            logger.error("Rate limiter indisponible: %s", e)

        if data["count"] > limit_config["requests"]:
            retry_after = max(1, int(limit_config["window"] - (current_time - data["window_start"])))
            logger.warning("Limite atteinte pour %s sur %s", client_id, endpoint)
            raise RateLimitError(f"Too many requests, retry in {retry_after} seconds", retry_after=retry_after)


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def check_rate_limit(endpoint: str):
    """Dépendance FastAPI qui applique la limite de l'endpoint"""
    def dependency(request: Request):
        limiter = get_rate_limiter(request)
        limiter.hit(limiter.get_client_id(request), endpoint)
        return True
    return dependency
