from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Required for admin operations like email invitations

    # Generic REST transport (fallback path for anonymous profiles)
    rest_api_base_url: str = ""
    rest_api_timeout_seconds: float = 10.0

    # Identity resolution
    auth_timeout_seconds: float = 5.0
    profile_create_timeout_seconds: float = 10.0
    anonymous_profiles_enabled: bool = False  # legacy guest mode; invite-only deployments keep this off
    anon_profiles_table: str = "anonymous_profiles"
    anon_profile_ttl_days: int = 30
    anon_profile_display_name: str = "Guest User"
    anon_storage_path: str = "~/.macrotrack/identity.json"
    anon_cookie_name: str = "anon_profile_id"
    anon_cookie_max_age: int = 30 * 24 * 60 * 60

    # Invitations
    min_password_length: int = 8
    default_invited_role: str = "client"

    # App
    app_name: str = "macrotrack"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: Optional[str] = None  # SILENT | ERROR | WARN | INFO | DEBUG; derived from environment when unset
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"
    auth_rate_limit: str = "10/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
