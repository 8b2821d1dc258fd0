import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


class Settings:
    @staticmethod
    def _get_int(name: str, default: int) -> int:
        return int(os.getenv(name, str(default)))

    @staticmethod
    def _get_bool(name: str, default: bool) -> bool:
        raw = os.getenv(name)
        if raw is None:
            return default
        return raw.strip().lower() in {"1", "true", "yes", "on"}

    @property
    def ENVIRONMENT(self) -> str:
        return os.getenv("ENVIRONMENT", "development")

    @property
    def APP_VERSION(self) -> str:
        return os.getenv("APP_VERSION", "1.0.0")

    @property
    def BASE_URL(self) -> str:
        return os.getenv("BASE_URL", "http://localhost:8000")

    @property
    def FRONTEND_URL(self) -> str:
        return os.getenv("FRONTEND_URL", "http://localhost:3000")

    @property
    def DATABASE_URL(self) -> str:
        database_url = os.getenv("DATABASE_URL", "").strip()
        if not database_url:
            raise ValueError("DATABASE_URL is required")
        return database_url

    @property
    def DB_CONNECT_RETRIES(self) -> int:
        return self._get_int("DB_CONNECT_RETRIES", 5)

    @property
    def DB_CONNECT_RETRY_DELAY_SECONDS(self) -> int:
        return self._get_int("DB_CONNECT_RETRY_DELAY_SECONDS", 2)

    @property
    def JWT_SECRET(self) -> str:
        return os.getenv("JWT_SECRET", "change-me-in-production")

    @property
    def JWT_ALGORITHM(self) -> str:
        return os.getenv("JWT_ALGORITHM", "HS256")

    @property
    def JWT_EXPIRE_MINUTES(self) -> int:
        return self._get_int("JWT_EXPIRE_MINUTES", 60)

    @property
    def JWT_REFRESH_EXPIRE_DAYS(self) -> int:
        return self._get_int("JWT_REFRESH_EXPIRE_DAYS", 30)

    @property
    def OTP_EXPIRE_MINUTES(self) -> int:
        return self._get_int("OTP_EXPIRE_MINUTES", 10)

    @property
    def OTP_RESEND_COOLDOWN_SECONDS(self) -> int:
        return self._get_int("OTP_RESEND_COOLDOWN_SECONDS", 60)

    @property
    def PASSWORD_RESET_TOKEN_EXPIRE_MINUTES(self) -> int:
        return self._get_int("PASSWORD_RESET_TOKEN_EXPIRE_MINUTES", 30)

    @property
    def PASSWORD_RESET_PATH(self) -> str:
        return os.getenv("PASSWORD_RESET_PATH", "/auth/reset-password")

    @property
    def PAYMENT_GATEWAY_URL(self) -> str:
        return os.getenv("PAYMENT_GATEWAY_URL", "")

    @property
    def PAYMENT_GATEWAY_API_KEY(self) -> str:
        return os.getenv("PAYMENT_GATEWAY_API_KEY", "")

    @property
    def PAYMENT_WEBHOOK_SECRET(self) -> str:
        return os.getenv("PAYMENT_WEBHOOK_SECRET", "")

    @property
    def PAYMENT_CURRENCY(self) -> str:
        return os.getenv("PAYMENT_CURRENCY", "RWF")

    @property
    def PAYMENT_GATEWAY_TIMEOUT_SECONDS(self) -> int:
        return self._get_int("PAYMENT_GATEWAY_TIMEOUT_SECONDS", 15)

    @property
    def SMS_API_URL(self) -> str:
        return os.getenv("SMS_API_URL", "")

    @property
    def SMS_API_KEY(self) -> str:
        return os.getenv("SMS_API_KEY", "")

    @property
    def SMS_SENDER_ID(self) -> str:
        return os.getenv("SMS_SENDER_ID", "AgriConnect")

    @property
    def CLOUDINARY_CLOUD_NAME(self) -> str:
        return os.getenv("CLOUDINARY_CLOUD_NAME", "")

    @property
    def CLOUDINARY_API_KEY(self) -> str:
        return os.getenv("CLOUDINARY_API_KEY", "")

    @property
    def CLOUDINARY_API_SECRET(self) -> str:
        return os.getenv("CLOUDINARY_API_SECRET", "")

    @property
    def SMTP_HOST(self) -> str:
        return os.getenv("SMTP_HOST", "")

    @property
    def SMTP_PORT(self) -> int:
        return self._get_int("SMTP_PORT", 587)

    @property
    def SMTP_USER(self) -> str:
        return os.getenv("SMTP_USER", "")

    @property
    def SMTP_PASSWORD(self) -> str:
        return os.getenv("SMTP_PASSWORD", "")

    @property
    def SMTP_USE_TLS(self) -> bool:
        return self._get_bool("SMTP_USE_TLS", True)

    @property
    def SMTP_FROM_EMAIL(self) -> str:
        return os.getenv("SMTP_FROM_EMAIL", "")

    @property
    def SMTP_FROM_NAME(self) -> str:
        return os.getenv("SMTP_FROM_NAME", "AgriConnect Rwanda")

    @property
    def CONTACT_INBOX_EMAIL(self) -> str:
        return os.getenv("CONTACT_INBOX_EMAIL", "info@agriconnect.rw")

    @property
    def ESCROW_AUTO_RELEASE_DELAY_DAYS(self) -> int:
        return self._get_int("ESCROW_AUTO_RELEASE_DELAY_DAYS", 7)

    @property
    def ESCROW_BATCH_SIZE(self) -> int:
        return self._get_int("ESCROW_BATCH_SIZE", 50)

    @property
    def ESCROW_CLAIM_TIMEOUT_MINUTES(self) -> int:
        return self._get_int("ESCROW_CLAIM_TIMEOUT_MINUTES", 30)

    @property
    def DEFAULT_DELIVERY_FEE(self) -> int:
        return self._get_int("DEFAULT_DELIVERY_FEE", 0)

    @property
    def RATE_LIMIT_ENABLED(self) -> bool:
        return self._get_bool("RATE_LIMIT_ENABLED", True)

    @property
    def CORS_ORIGINS(self) -> str:
        return os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001")


settings = Settings()

# Validate critical settings
if settings.JWT_SECRET == "change-me-in-production":
    import warnings
    warnings.warn("JWT_SECRET is using default value. Change it in production!", UserWarning)
