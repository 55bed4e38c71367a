import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API Settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_key: str = os.getenv("API_KEY", "super-secret-key")

    # Storage Settings
    backend: str = os.getenv("BR_BACKEND", "file")  # "file" or "sqlite"
    data_dir: str = os.getenv("BR_DATA_DIR", ".")
    books_file: str = os.getenv("BR_BOOKS_FILE", "Libri.dati.csv")
    db_file: str = os.getenv("BR_DB_FILE", "bookrecommender.db")
    storage_read_retries: int = int(os.getenv("BR_STORAGE_READ_RETRIES", "2"))

    # Domain limits
    max_recommendations: int = int(os.getenv("BR_MAX_RECOMMENDATIONS", "3"))
    note_max_length: int = int(os.getenv("BR_NOTE_MAX_LENGTH", "256"))

    # Application Settings
    app_name: str = os.getenv("APP_NAME", "Book Recommender")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    debug: bool = _env_bool("DEBUG")
    environment: str = os.getenv("ENVIRONMENT", "development")
    seed: Optional[int] = int(os.environ["BR_RANDOM_SEED"]) if os.getenv("BR_RANDOM_SEED") else None


settings = Settings()
