"""Application settings and configuration."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

MIRROR_NODE_URLS = {
    "testnet": "https://testnet.mirrornode.hedera.com",
    "mainnet": "https://mainnet-public.mirrornode.hedera.com",
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = None
    postgres_user: str = "agrodex"
    postgres_password: str = "agrodex_dev_password"
    postgres_host: str = "localhost"
    postgres_db: str = "agrodex"
    postgres_port: int = 5432

    # API
    api_port: int = 3001
    environment: str = "development"
    api_host: str = "0.0.0.0"

    # Security
    jwt_secret_key: str = "dev-jwt-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_audience: Optional[str] = "authenticated"

    # Ledger
    ledger_provider: Literal["local", "hedera"] = "local"
    hedera_network: Literal["testnet", "mainnet"] = "testnet"
    hedera_operator_id: Optional[str] = None
    hedera_operator_key: Optional[str] = None
    hedera_operator_key_type: Literal["auto", "ecdsa", "ed25519"] = "auto"
    hedera_topic_id: Optional[str] = None
    hedera_submit_key: Optional[str] = None
    mirror_node_url: Optional[str] = None
    ledger_submit_timeout_seconds: float = 25.0
    ledger_mint_timeout_seconds: float = 25.0
    ledger_query_timeout_seconds: float = 15.0
    certificate_token_name: str = "AgroDex Batch Certificate"
    certificate_token_symbol: str = "AGRI"

    # Narrative generator
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    gemini_timeout_ms: int = 6000
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    narrative_retry_backoff_ms: int = 300

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = False
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["authorization", "x-client-info", "apikey", "content-type", "x-correlation-id", "x-dry-run"]

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def mirror_node_url_computed(self) -> str:
        """Mirror node base URL for the selected network."""
        if self.mirror_node_url:
            return self.mirror_node_url.rstrip("/")
        return MIRROR_NODE_URLS[self.hedera_network]

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() in ("development", "dev", "test")

    def validate_production_settings(self):
        """Validate settings for production environment."""
        if self.is_development:
            return
        if self.ledger_provider == "local":
            raise ValueError(
                "LEDGER_PROVIDER=local is not allowed in production. "
                "Use LEDGER_PROVIDER=hedera."
            )
        missing = [
            name
            for name, value in (
                ("HEDERA_OPERATOR_ID", self.hedera_operator_id),
                ("HEDERA_OPERATOR_KEY", self.hedera_operator_key),
                ("HEDERA_TOPIC_ID", self.hedera_topic_id),
            )
            if not value
        ]
        if missing:
            raise ValueError(f"Missing ledger configuration: {', '.join(missing)}")
        if self.jwt_secret_key.startswith("dev-"):
            raise ValueError(
                "JWT_SECRET_KEY must be set in production. "
                "Do not use the development default."
            )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
