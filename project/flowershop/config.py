# flowershop/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./flowershop.db"

    # Админка (JWT)
    AUTH_SECRET_KEY: str = "dev-admin-secret"
    AUTH_TOKEN_EXPIRE_MINUTES: int = 720
    AUTH_LOGIN: str = "admin"
    AUTH_PASSWORD: str = "admin"

    # Сессия покупателя (HMAC-cookie) и OTP
    AUTH_SESSION_SECRET: str = ""
    AUTH_SESSION_DAYS: int = 7
    OTP_SECRET: str = "dev-otp-secret"

    # Cron-эндпоинты
    CRON_SECRET: str = ""
    AUTOMATION_BATCH_DELAY: float = 0.5

    # Почта (Resend)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "Vadiler Çiçek <siparis@vadiler.com>"
    SITE_URL: str = "https://vadiler.com"

    # Платёжный шлюз
    PAYMENT_API_KEY: str = ""
    PAYMENT_SECRET_KEY: str = ""
    PAYMENT_BASE_URL: str = "https://sandbox-api.iyzipay.com"

    LOG_DIR: str = "flowershop/log"
    LOG_PRINT: str = "1"
    LOG_PRINT_DB: str = "0"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
