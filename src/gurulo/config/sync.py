import os
from pathlib import Path

_DATA_ROOT = Path(__file__).resolve().parent.parent.parent.parent / "data"


class Sync:
    def __init__(self, config: dict | None = None) -> None:
        sync_cfg = (config or {}).get("gurulo", {}).get("sync", {})
        self.PRIMARY_DIR: str = str(sync_cfg.get("primary_dir", os.getenv("MEMORY_PRIMARY_DIR", str(_DATA_ROOT / "memory"))))
        self.MIRROR_DIR: str = str(
            sync_cfg.get("mirror_dir", os.getenv("MEMORY_MIRROR_DIR", str(_DATA_ROOT / "memory_mirror")))
        )
        self.SYNC_INTERVAL: float = float(sync_cfg.get("sync_interval", os.getenv("MEMORY_SYNC_INTERVAL", "30")))
        self.MAX_RETRIES: int = int(sync_cfg.get("max_retries", os.getenv("MEMORY_SYNC_MAX_RETRIES", "3")))
        self.MAX_SNAPSHOT_BYTES: int = int(
            sync_cfg.get("max_snapshot_bytes", os.getenv("MEMORY_MAX_SNAPSHOT_BYTES", str(5 * 1024 * 1024)))
        )
