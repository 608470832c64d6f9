from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    # App
    app_name: str = "SchoolFlow Approvals"
    app_version: str = "0.1.0"
    debug: bool = False
    
    # CORS
    cors_origins: str = "http://localhost:3000"
    
    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]
    
    # Database
    database_url: str = "sqlite:///./schoolflow.db"
    database_echo: bool = False
    
    # Security
    secret_key: str = "dev-secret-key-change-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    
    # Approval policy
    expense_escalation_threshold: float = 100000.0  # amounts at or above add a director level
    default_sla_hours: int = 72  # hours allowed for a decision unless the workflow sets its own
    
    # Notifications
    notifications_enabled: bool = True
    webhook_timeout: int = 10
    
    # Logging
    log_level: str = "INFO"
    log_dir: str = "./logs"
    log_to_file: bool = False
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SCHOOLFLOW_",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
