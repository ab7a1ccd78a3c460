from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Required for claiming and admin writes under RLS

    # App
    app_name: str = "opsportal"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    # Identity claiming / redirects
    site_url: Optional[str] = None  # externally reachable base URL, e.g. https://portal.example.com
    allowed_forwarded_hosts: str = ""  # comma list of hosts trusted from X-Forwarded-Host
    onboarding_path: str = "/onboarding"
    default_next_path: str = "/dashboard"
    unauthorized_path: str = "/unauthorized"
    sign_in_error_path: str = "/login"
    oauth_provider: str = "google"
    auth_callback_path: str = "/api/v1/auth/callback"  # must be listed in the Supabase redirect allow-list

    # Session cookies
    access_token_cookie: str = "sb-access-token"
    refresh_token_cookie: str = "sb-refresh-token"
    code_verifier_cookie: str = "sb-code-verifier"
    code_verifier_max_age_seconds: int = 600

    # Permission set cache (one entry per session)
    permission_cache_ttl_seconds: int = 3600
    permission_cache_max_size: int = 1000

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_local(self) -> bool:
        return self.environment == "development"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def get_allowed_forwarded_hosts(self) -> List[str]:
        return [h.strip().lower() for h in self.allowed_forwarded_hosts.split(",") if h.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
