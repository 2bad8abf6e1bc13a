from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Dict, List, Optional


class Settings(BaseSettings):
    # Database configuration
    DATABASE_URL: str  # PostgreSQL URL with the pgvector extension available (required)

    CORS_ORIGINS: str = "http://localhost:5173,https://localhost:5173,http://localhost:3001"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    MAX_UPLOAD_SIZE_MB: int = 10

    # Static API keys: "key:user_id,key2:user_id2"
    STATIC_API_KEYS: str = ""

    # Azure OpenAI configuration
    AZURE_OPENAI_ENDPOINT: Optional[str] = None
    AZURE_OPENAI_API_KEY: Optional[str] = None
    AZURE_OPENAI_API_VERSION: str = "2024-10-21"
    AZURE_OPENAI_CHAT_DEPLOYMENT: str = "gpt-4o-mini"
    AZURE_OPENAI_EMBEDDING_DEPLOYMENT: str = "text-embedding-3-small"
    AZURE_OPENAI_HEADERS: str = ""  # "Header-Name=value,Other=value"
    AZURE_OPENAI_TIMEOUT: float = 60.0

    # Background job / Redis configuration
    REDIS_URL: str = "redis://redis:6379/0"
    EMBEDDING_QUEUE_NAME: str = "embeddings"
    EMBEDDING_JOB_TIMEOUT: int = 600  # 10 minutes
    EMBEDDING_INTERVAL_SECONDS: int = 120
    EMBEDDING_BATCH_SIZE: int = 50
    EMBEDDING_LOOKBACK_HOURS: int = 24
    RECOMMENDATION_QUEUE_NAME: str = "recommendations"
    RECOMMENDATION_JOB_TIMEOUT: int = 900  # 15 minutes
    RECOMMENDATION_INTERVAL_SECONDS: int = 3600

    # Recommendation agent
    RECOMMENDATION_MAX_ITERATIONS: int = 5
    RECOMMENDATION_TTL_DAYS: int = 7
    RECOMMENDATION_MIN_TRANSACTIONS: int = 5
    RECOMMENDATION_REGENERATION_GRACE_MINUTES: int = 2

    # Transaction enhancement
    ENHANCEMENT_HISTORY_LIMIT: int = 50

    @field_validator("STATIC_API_KEYS", "AZURE_OPENAI_HEADERS", mode="before")
    @classmethod
    def _strip_pairs(cls, value):
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            return ",".join(str(item).strip() for item in value if item is not None)
        return str(value).strip()

    @field_validator("MAX_UPLOAD_SIZE_MB", "EMBEDDING_BATCH_SIZE", "RECOMMENDATION_MAX_ITERATIONS")
    @classmethod
    def _validate_positive(cls, value):
        if value < 1:
            raise ValueError("value must be at least 1")
        return value

    @staticmethod
    def _parse_pairs(raw: str, separator: str) -> Dict[str, str]:
        pairs = {}
        for entry in (raw or "").split(","):
            if separator not in entry:
                continue
            key, value = entry.split(separator, 1)
            key = key.strip()
            value = value.strip()
            if key and value:
                pairs[key] = value
        return pairs

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def api_key_map(self) -> Dict[str, str]:
        """Map of API key -> user id."""
        return self._parse_pairs(self.STATIC_API_KEYS, ":")

    @property
    def azure_openai_extra_headers(self) -> Dict[str, str]:
        """Extra headers attached to every Azure OpenAI request."""
        return self._parse_pairs(self.AZURE_OPENAI_HEADERS, "=")

    @property
    def is_ai_configured(self) -> bool:
        return bool(self.AZURE_OPENAI_ENDPOINT and self.AZURE_OPENAI_API_KEY)

    @property
    def max_upload_size_bytes(self) -> int:
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024

    class Config:
        env_file = ".env"
        extra = "ignore"  # Ignore extra environment variables not defined in the model


settings = Settings()
