"""
Configuration for the Spotify gateway service.

Settings are grouped per concern and read from the environment (a local
``.env`` file is honoured) through ``Config.from_env``.
"""

import os
from dataclasses import dataclass, field
from typing import Any

from dotenv import load_dotenv

SPOTIFY_SCOPES = [
    "user-read-email",
    "user-read-private",
    "user-library-read",
    "user-top-read",
    "user-read-recently-played",
    "user-read-currently-playing",
    "user-follow-read",
    "playlist-read-private",
    "playlist-modify-public",
    "playlist-modify-private",
    "playlist-read-collaborative",
    "user-library-modify",
]


@dataclass
class SpotifyConfig:
    """Upstream Spotify application credentials and endpoints."""

    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = "http://localhost:8000/callback"
    api_base_url: str = "https://api.spotify.com/v1"
    accounts_url: str = "https://accounts.spotify.com"
    timeout: float = 30.0
    scopes: list[str] = field(default_factory=lambda: list(SPOTIFY_SCOPES))

    @property
    def token_url(self) -> str:
        """Get the OAuth token endpoint."""
        return f"{self.accounts_url}/api/token"

    @property
    def authorize_url(self) -> str:
        """Get the OAuth authorize endpoint."""
        return f"{self.accounts_url}/authorize"


@dataclass
class DatabaseConfig:
    """Database configuration."""

    host: str = "localhost"
    port: int = 5432
    name: str = "spotify_gateway"
    user: str = "spotify_gateway"
    password: str = "spotify_gateway"

    @property
    def url(self) -> str:
        """Get database URL."""
        return f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"


@dataclass
class CacheConfig:
    """Configuration for the result cache."""

    enabled: bool = True
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: str | None = None
    key_prefix: str = "spotify_gateway"
    default_ttl: int = 3600


@dataclass
class GatewayConfig:
    """Behaviour of the call gateway and the aggregation built on it."""

    token_expiry_seconds: int = 3600
    request_delay: float = 0.02
    default_retry_after: float = 1.0
    refresh_on_any_error: bool = True
    page_size: int = 50
    playlist_batch_size: int = 100
    audio_feature_batch_size: int = 100
    saved_check_batch_size: int = 50
    artist_batch_size: int = 50
    genre_match_threshold: int = 5
    max_random_offset: int = 10
    recommendation_limit: int = 100
    fallback_genre_count: int = 2


@dataclass
class ServiceConfig:
    """Service configuration."""

    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000
    dev_mode: bool = False
    application_id: str = ""


@dataclass
class Config:
    """Main configuration class."""

    spotify: SpotifyConfig = field(default_factory=SpotifyConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        load_dotenv()

        config = cls(
            spotify=SpotifyConfig(
                client_id=os.getenv("SPOTIFY_CLIENT_ID", ""),
                client_secret=os.getenv("SPOTIFY_CLIENT_SECRET", ""),
                redirect_uri=os.getenv("SPOTIFY_REDIRECT_URI", "http://localhost:8000/callback"),
                api_base_url=os.getenv("SPOTIFY_API_BASE_URL", "https://api.spotify.com/v1"),
                accounts_url=os.getenv("SPOTIFY_ACCOUNTS_URL", "https://accounts.spotify.com"),
                timeout=float(os.getenv("SPOTIFY_TIMEOUT", "30.0")),
            ),
            database=DatabaseConfig(
                host=os.getenv("DB_HOST", "localhost"),
                port=int(os.getenv("DB_PORT", "5432")),
                name=os.getenv("DB_NAME", "spotify_gateway"),
                user=os.getenv("DB_USER", "spotify_gateway"),
                password=os.getenv("DB_PASSWORD", "spotify_gateway"),
            ),
            cache=CacheConfig(
                enabled=os.getenv("CACHE_ENABLED", "true").lower() == "true",
                redis_host=os.getenv("REDIS_HOST", "localhost"),
                redis_port=int(os.getenv("REDIS_PORT", "6379")),
                redis_db=int(os.getenv("REDIS_DB", "0")),
                redis_password=os.getenv("REDIS_PASSWORD") or None,
                key_prefix=os.getenv("CACHE_KEY_PREFIX", "spotify_gateway"),
                default_ttl=int(os.getenv("CACHE_TTL", "3600")),
            ),
            service=ServiceConfig(
                log_level=os.getenv("LOG_LEVEL", "INFO"),
                host=os.getenv("SERVICE_HOST", "0.0.0.0"),
                port=int(os.getenv("SERVICE_PORT", "8000")),
                dev_mode=os.getenv("DEV_MODE", "false").lower() == "true",
                application_id=os.getenv("APPLICATION_ID", ""),
            ),
        )

        # Gateway tuning is optional; only override what is set
        gateway = config.gateway
        if val := os.getenv("GATEWAY_TOKEN_EXPIRY_SECONDS"):
            gateway.token_expiry_seconds = int(val)
        if val := os.getenv("GATEWAY_REQUEST_DELAY"):
            gateway.request_delay = float(val)
        if val := os.getenv("GATEWAY_DEFAULT_RETRY_AFTER"):
            gateway.default_retry_after = float(val)
        if val := os.getenv("GATEWAY_REFRESH_ON_ANY_ERROR"):
            gateway.refresh_on_any_error = val.lower() == "true"
        if val := os.getenv("GATEWAY_PAGE_SIZE"):
            gateway.page_size = int(val)
        if val := os.getenv("GATEWAY_PLAYLIST_BATCH_SIZE"):
            gateway.playlist_batch_size = int(val)
        if val := os.getenv("GATEWAY_AUDIO_FEATURE_BATCH_SIZE"):
            gateway.audio_feature_batch_size = int(val)
        if val := os.getenv("GATEWAY_GENRE_MATCH_THRESHOLD"):
            gateway.genre_match_threshold = int(val)
        if val := os.getenv("GATEWAY_MAX_RANDOM_OFFSET"):
            gateway.max_random_offset = int(val)
        if val := os.getenv("GATEWAY_RECOMMENDATION_LIMIT"):
            gateway.recommendation_limit = int(val)
        if val := os.getenv("GATEWAY_FALLBACK_GENRE_COUNT"):
            gateway.fallback_genre_count = int(val)

        return config


class ConfigSingleton:
    """Singleton wrapper for Config."""

    _instance: Config | None = None
    _singleton_instance: "ConfigSingleton | None" = None

    def __new__(cls) -> "ConfigSingleton":
        """Get the singleton Config instance."""
        if cls._singleton_instance is None:
            cls._singleton_instance = super().__new__(cls)
            cls._instance = Config.from_env()
        return cls._singleton_instance

    def __getattr__(self, name: str) -> Any:
        """Forward attribute access to the wrapped config instance."""
        if self._instance is None:
            raise AttributeError(f"'{self.__class__.__name__}' object has no attribute '{name}'")
        return getattr(self._instance, name)

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton instance (mainly for testing)."""
        cls._instance = None
        cls._singleton_instance = None


def get_config() -> "ConfigSingleton":
    """Get the singleton configuration instance."""
    return ConfigSingleton()
