from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://taskboard:taskboard@db:5432/taskboard"
  sql_echo: bool = False
  app_secret: str = "dev-secret-change-me"
  app_version: str = "0.1.0"
  token_ttl_days: int = 30

  host: str = "0.0.0.0"
  port: int = 3001
  public_api_url: str = "http://localhost:3001"
  log_level: str = "INFO"

  rate_limit_login_ip_per_minute: int = 60
  rate_limit_login_email_per_minute: int = 20

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  trusted_hosts: str = "localhost,127.0.0.1,0.0.0.0,api"

  upload_dir: str = "data/uploads"
  max_attachment_bytes: int = 10 * 1024 * 1024

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]

  def is_test_db(self) -> bool:
    db_name = self.database_url.rsplit("/", 1)[-1]
    return "test" in db_name


settings = Settings()
