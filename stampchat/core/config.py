# stampchat/core/config.py
import os
from typing import List, Literal
from dotenv import load_dotenv


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """
    Setup environment variables.
        - STORE_BACKEND the document store to use: "firestore", "redis" or "memory"
        - FIRESTORE_PROJECT_ID / FIRESTORE_DATABASE the Firestore project and database
        - REDIS_* connection settings for the Redis backend
        - STAMP_NAMES the comma separated allow-list of stamp assets
        - STAMP_URL_TEMPLATE where a stamp image is served from, "{name}" is substituted
        - CORS_ORIGINS comma separated list of allowed origins
    """

    # Load environment variables from the .env file
    load_dotenv()

    STORE_BACKEND: Literal["firestore", "redis", "memory"] = os.getenv("STORE_BACKEND", "firestore")

    FIRESTORE_PROJECT_ID: str = os.getenv("FIRESTORE_PROJECT_ID", "")
    FIRESTORE_DATABASE: str = os.getenv("FIRESTORE_DATABASE", "")

    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_ACCESS_KEY: str = os.getenv("REDIS_ACCESS_KEY", "")
    REDIS_KEY_PREFIX: str = os.getenv("REDIS_KEY_PREFIX", "stampchat")

    STAMP_NAMES: List[str] = _split(os.getenv("STAMP_NAMES", ",".join(str(i) for i in range(1, 13))))
    STAMP_URL_TEMPLATE: str = os.getenv("STAMP_URL_TEMPLATE", "/stamps/{name}.png")

    CORS_ORIGINS: List[str] = _split(os.getenv("CORS_ORIGINS", "*"))

settings = Settings()
