from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "dev"
    auth_mode: str = "none"  # none | forwardauth
    root_path: str = ""
    log_level: str = "INFO"

    # Full SQLAlchemy URL; when unset the PostgreSQL URL below is used.
    database_url_override: str | None = None
    postgres_db: str = "family_graph"
    postgres_user: str = "family_graph"
    postgres_password: str = "family_graph_pass"
    postgres_host: str = "db"
    postgres_port: int = 5432
    sql_echo: bool = False

    # Relationship resolver: descendant expansion hops below the core household.
    resolver_depth: int = Field(default=2, ge=2)

    # Identifier generator (M0001 / F0001)
    identifier_width: int = 4
    identifier_retry_attempts: int = 5

    # Account auto-provisioning
    default_account_password: str = "123456"
    bcrypt_rounds: int = 10

    stats_cache_ttl_seconds: int = 300

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


settings = Settings()
