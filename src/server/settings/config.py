from pydantic import BaseModel
from dotenv import load_dotenv
import os

load_dotenv()


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    app_name: str = "Orderlink - signerade beställningslänkar (v1)"
    environment: str = os.getenv("ENVIRONMENT", "dev")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    cors_origins: str = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")

    # Signering av beställningslänkar
    order_secret: str = os.getenv("ORDER_SECRET", "")
    order_base_url: str = os.getenv("ORDER_BASE_URL", "http://localhost:8000")
    require_signed_token: bool = _flag("REQUIRE_SIGNED_TOKEN")

    # E-post
    sales_mailbox: str = os.getenv("SALES_MAILBOX", "vertrieb@xvoice-uc.de")
    from_email: str = os.getenv("FROM_EMAIL", "xVoice UC <no-reply@xvoice-uc.de>")
    resend_api_key: str = os.getenv("RESEND_API_KEY", "")

    # Presentation
    company_name: str = os.getenv("COMPANY_NAME", "xVoice UC")
    currency: str = os.getenv("CURRENCY", "€")

settings = Settings()
