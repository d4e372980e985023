from pydantic import PrivateAttr
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Retail Onboarding API"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///./onboarding.db"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Session tokens (HS256). Expiries are in milliseconds.
    jwt_secret: str = "change-me"
    jwt_applicant_expiry_ms: int = 900_000
    jwt_officer_expiry_ms: int = 1_800_000
    jwt_admin_expiry_ms: int = 600_000
    jwt_refresh_expiry_ms: int = 2_592_000_000

    # Server-side staff sessions. Timeouts are in milliseconds.
    session_idle_timeout_ms: int = 900_000
    session_officer_absolute_ms: int = 28_800_000
    session_admin_absolute_ms: int = 14_400_000
    session_max_concurrent: int = 1

    otp_length: int = 6
    otp_expiry_minutes: int = 10
    otp_max_attempts: int = 3
    bcrypt_rounds: int = 12

    iban_country_code: str = "NL"
    iban_bank_code: str = "ABCB"

    rate_limit_window_ms: int = 3_600_000
    rate_limit_create_application: int = 5
    rate_limit_send_otp: int = 3
    rate_limit_verify_otp_app: int = 3
    rate_limit_verify_otp_ip: int = 10
    rate_limit_upload_document: int = 10

    document_storage_dir: str = "./storage/documents"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    _is_sqlite: bool = PrivateAttr(default=False)
    _is_postgresql: bool = PrivateAttr(default=False)

    def model_post_init(self, __context: object) -> None:
        _scheme = self.database_url.split(":")[0].lower()
        object.__setattr__(self, "_is_sqlite", "sqlite" in _scheme)
        object.__setattr__(self, "_is_postgresql", "postgresql" in _scheme)

    @property
    def is_sqlite(self) -> bool:
        return self._is_sqlite

    @property
    def is_postgresql(self) -> bool:
        return self._is_postgresql

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
