from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ADMIN_API_KEY = "bk-admin-dev-key"

# Invoice numbers double as PDF file names; see storage.invoices.
INVOICE_PREFIX_RE = re.compile(r"^[A-Za-z0-9]+$")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="BK_", extra="ignore")

    app_name: str = "BK Agencements Billing"
    env: str = "dev"
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    database_url: str = "sqlite+pysqlite:///./bk_billing.db"

    auth_enabled: bool = True
    admin_api_key: str = DEFAULT_ADMIN_API_KEY
    admin_actor_id: str = "admin-001"

    company_name: str = "BK Agencements"
    company_tagline: str = "Mobilier sur-mesure d'exception"
    company_country: str = "Maroc"
    default_currency: str = "EUR"
    vat_rate_percent: int = Field(default=20, ge=0, le=100)
    invoice_number_prefix: str = "BK"
    invoice_number_attempts: int = Field(default=3, ge=1)

    # Invoice PDF storage: local | minio
    invoice_backend: str = "local"
    invoices_dir: Path = Path("./public/invoices")
    invoices_url_prefix: str = "/invoices"
    minio_endpoint: str = "minio:9000"
    minio_access_key: str = "minioadmin"
    minio_secret_key: str = "minioadmin"
    minio_bucket: str = "invoices"
    minio_secure: bool = False

    # Outbound email: smtp | log
    email_backend: str = "log"
    admin_notification_email: str | None = None
    mail_username: str = ""
    mail_password: str = ""
    mail_from: str = "no-reply@bk-agencements.com"
    mail_from_name: str = "BK Agencements"
    mail_server: str = "localhost"
    mail_port: int = 587
    mail_starttls: bool = True
    mail_ssl_tls: bool = False
    mail_use_credentials: bool = True
    mail_validate_certs: bool = True
    mail_suppress_send: bool = False

    @field_validator("invoice_number_prefix")
    @classmethod
    def _alnum_prefix(cls, value: str) -> str:
        if not INVOICE_PREFIX_RE.match(value):
            raise ValueError("invoice_number_prefix must be letters and digits only")
        return value

    def model_post_init(self, __context) -> None:
        if self.env.lower() == "dev":
            return
        if self.auth_enabled and self.admin_api_key == DEFAULT_ADMIN_API_KEY:
            raise ValueError(
                "insecure default secrets are not allowed outside dev mode; set env vars: BK_ADMIN_API_KEY"
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
