import os
from dataclasses import asdict, dataclass, fields

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_key(name: str):
    value = (os.getenv(name) or "").strip()
    return value or None


@dataclass
class Config:
    DB_FILE: str = "crm.db"
    MEDIA_DIR: str = "media"
    MEDIA_URL_PREFIX: str = "/media/"
    DEALS_SCHEMA: str = "dutch"
    OFFERTE_AI_COLUMNS: bool = True
    AUTO_INIT_DB: bool = True
    OPENAI_API_KEY: str | None = None
    GEMINI_API_KEY: str | None = None
    OPENAI_VISION_MODEL: str = "gpt-4.1-mini"
    GEMINI_VISION_MODEL: str = "gemini-1.5-flash"
    AI_REQUEST_TIMEOUT: float = 60.0
    E2E: bool = False
    LOG_LEVEL: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        load_dotenv()
        return cls(
            DB_FILE=os.getenv("DB_FILE", cls.DB_FILE).strip(),
            MEDIA_DIR=os.getenv("MEDIA_DIR", cls.MEDIA_DIR),
            MEDIA_URL_PREFIX=os.getenv("MEDIA_URL_PREFIX", cls.MEDIA_URL_PREFIX),
            DEALS_SCHEMA=os.getenv("DEALS_SCHEMA", cls.DEALS_SCHEMA).strip().lower(),
            OFFERTE_AI_COLUMNS=_env_bool("OFFERTE_AI_COLUMNS", cls.OFFERTE_AI_COLUMNS),
            AUTO_INIT_DB=_env_bool("AUTO_INIT_DB", cls.AUTO_INIT_DB),
            OPENAI_API_KEY=_env_key("OPENAI_API_KEY"),
            GEMINI_API_KEY=_env_key("GEMINI_API_KEY"),
            OPENAI_VISION_MODEL=_env_key("OPENAI_VISION_MODEL") or cls.OPENAI_VISION_MODEL,
            GEMINI_VISION_MODEL=_env_key("GEMINI_VISION_MODEL") or cls.GEMINI_VISION_MODEL,
            AI_REQUEST_TIMEOUT=float(os.getenv("AI_REQUEST_TIMEOUT", cls.AI_REQUEST_TIMEOUT)),
            E2E=_env_bool("E2E", False) or _env_bool("NEXT_PUBLIC_E2E", False),
            LOG_LEVEL=os.getenv("LOG_LEVEL", cls.LOG_LEVEL).upper(),
        )

    def override(self, values: dict) -> None:
        known = {f.name for f in fields(self)}
        for key, value in values.items():
            if key in known:
                setattr(self, key, value)

    def to_flask_dict(self) -> dict:
        return asdict(self)
