import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()  # loads .env for local dev

@dataclass(frozen=True)
class Settings:
    env: str = os.getenv("ENV", "local")
    service_name: str = os.getenv("SERVICE_NAME", "fulfillment-api")
    database_url: str = os.getenv("DATABASE_URL", "")
    db_pool_max_size: int = int(os.getenv("DB_POOL_MAX_SIZE", "10"))

    # Signature provider (Dropbox Sign v3)
    signature_api_key: str = os.getenv("SIGNATURE_API_KEY", "")
    signature_api_base_url: str = os.getenv("SIGNATURE_API_BASE_URL", "https://api.hellosign.com/v3")
    signature_client_id: str = os.getenv("SIGNATURE_CLIENT_ID", "")
    signature_test_mode: bool = os.getenv("SIGNATURE_TEST_MODE", "0") == "1"
    signature_send_timeout_seconds: float = float(os.getenv("SIGNATURE_SEND_TIMEOUT_SECONDS", "20"))
    signature_sign_url_ttl_minutes: int = int(os.getenv("SIGNATURE_SIGN_URL_TTL_MINUTES", "60"))
    signature_webhook_verify: bool = os.getenv("SIGNATURE_WEBHOOK_VERIFY", "0") == "1"

    # Generated order documents (rendering lives outside this service)
    order_document_url_template: str = os.getenv("ORDER_DOCUMENT_URL_TEMPLATE", "")

settings = Settings()
