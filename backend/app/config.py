from typing import List, Optional
import json

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "PerceptionSurvey"
    app_env: str = "dev"
    log_level: str = "INFO"

    database_url: str = "sqlite:///./data/app.db"
    db_pool_size: int = 5
    # seconds to wait for a free connection before the request fails
    db_pool_timeout: float = 10.0

    # key for deriving cookie hashes; override in every real deployment
    credential_secret: str = "dev-credential-secret"
    # unset -> issued cookie hashes never expire. Expiry only stops a hash
    # from being handed out again; an expired hash still authenticates its
    # session (check_cookie_hash ignores expiration), so this is not revocation.
    cookie_ttl_days: Optional[int] = None

    # honor X-Forwarded-For only when the peer is a local reverse proxy
    trust_proxy_loopback: bool = True

    # read raw string from env (works with comma-separated values)
    cors_origins: str = "*"

    @property
    def cors_origins_list(self) -> List[str]:
        s = (self.cors_origins or "").strip()
        if not s:
            return []
        if s.startswith("["):
            # also accept JSON list
            return [str(x) for x in json.loads(s)]
        return [part.strip() for part in s.split(",") if part.strip()]


settings = Settings()
