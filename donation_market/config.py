import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./donations.db")
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    RECEIPT_MAX_ATTEMPTS: int = int(os.getenv("RECEIPT_MAX_ATTEMPTS", 3))
    MIN_COLLECTION_DAYS: int = int(os.getenv("MIN_COLLECTION_DAYS", 6))
    MIN_LISTING_IMAGES: int = int(os.getenv("MIN_LISTING_IMAGES", 4))
    DEFAULT_PAGE_SIZE: int = int(os.getenv("DEFAULT_PAGE_SIZE", 12))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    SEED_ON_STARTUP: bool = os.getenv("SEED_ON_STARTUP", "false").lower() in ("1", "true", "yes")

settings = Settings()
