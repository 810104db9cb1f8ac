import os


class Stream:
    def __init__(self, config: dict | None = None) -> None:
        stream_cfg = (config or {}).get("gurulo", {}).get("stream", {})
        self.CLEANUP_TIMEOUT: float = float(stream_cfg.get("cleanup_timeout", os.getenv("STREAM_CLEANUP_TIMEOUT", "300")))
        self.REAP_INTERVAL: float = float(stream_cfg.get("reap_interval", os.getenv("STREAM_REAP_INTERVAL", "60")))
        # Non-terminal sessions older than this are reported as possible leaks.
        self.LONG_LIVED_THRESHOLD: float = float(
            stream_cfg.get("long_lived_threshold", os.getenv("STREAM_LONG_LIVED_THRESHOLD", "600"))
        )
        self.WORDS_PER_CHUNK: int = int(stream_cfg.get("words_per_chunk", os.getenv("STREAM_WORDS_PER_CHUNK", "50")))

        self.ADMISSION_LIMIT: int = int(stream_cfg.get("admission_limit", os.getenv("STREAM_ADMISSION_LIMIT", "5")))
        self.ADMISSION_WINDOW: float = float(
            stream_cfg.get("admission_window", os.getenv("STREAM_ADMISSION_WINDOW", "60"))
        )
