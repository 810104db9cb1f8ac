import logging
import os

logger = logging.getLogger(__name__)

_DEFAULT_SYSTEM_PROMPT = (
    "You are Gurulo, the assistant of a rental booking platform. "
    "Answer precisely and concisely."
)


class Core:
    def __init__(self, config: dict | None = None) -> None:
        cfg = (config or {}).get("gurulo", {})
        models_cfg = cfg.get("models", {})

        openai_env = str(cfg.get("openai_key_env", "OPENAI_API_KEY"))

        self.OPENAI_API_KEY: str | None = os.getenv(openai_env)
        self.MSG_MODEL_ID: str | None = models_cfg.get("message_model") or os.getenv("MSG_MODEL_ID")
        self.DEFAULT_REQUEST_TYPE: str = str(cfg.get("default_request_type", os.getenv("DEFAULT_REQUEST_TYPE", "chat")))
        self.SYSTEM_PROMPT: str = str(cfg.get("system_prompt", os.getenv("SYSTEM_PROMPT", _DEFAULT_SYSTEM_PROMPT)))
        # Characters of history kept in the rolling per-user conversation summary.
        self.SUMMARY_MAX_CHARS: int = int(cfg.get("summary_max_chars", os.getenv("SUMMARY_MAX_CHARS", "2000")))

        required = [
            ("OPENAI_API_KEY", self.OPENAI_API_KEY),
            ("MSG_MODEL_ID", self.MSG_MODEL_ID),
        ]
        missing = [name for name, val in required if not val]
        if missing:
            raise ValueError(f"Missing environment variables: {', '.join(missing)}")
