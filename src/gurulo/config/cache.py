import os


class Cache:
    def __init__(self, config: dict | None = None) -> None:
        cache_cfg = (config or {}).get("gurulo", {}).get("cache", {})
        self.RESPONSE_CACHE_SIZE: int = int(cache_cfg.get("response_cache_size", os.getenv("RESPONSE_CACHE_SIZE", "1000")))
        self.CONVERSATION_CACHE_SIZE: int = int(
            cache_cfg.get("conversation_cache_size", os.getenv("CONVERSATION_CACHE_SIZE", "500"))
        )
        # TTLs and intervals are in seconds
        self.RESPONSE_TTL: float = float(cache_cfg.get("response_ttl", os.getenv("RESPONSE_TTL", "3600")))
        self.CONVERSATION_TTL: float = float(cache_cfg.get("conversation_ttl", os.getenv("CONVERSATION_TTL", "7200")))
        self.SWEEP_INTERVAL: float = float(cache_cfg.get("sweep_interval", os.getenv("CACHE_SWEEP_INTERVAL", "300")))
