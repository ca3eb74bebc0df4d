import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    port: int = int(os.getenv("PORT", "3001"))
    api_base_url: str = os.getenv("API_BASE_URL", "")

    # Database settings
    db_host: str = os.getenv("DB_HOST", "localhost")
    db_port: Optional[int] = int(os.getenv("DB_PORT")) if os.getenv("DB_PORT") else None
    db_name: str = os.getenv("DB_NAME", "library")
    db_user: Optional[str] = os.getenv("DB_USER")
    db_password: Optional[str] = os.getenv("DB_PASSWORD")
    database_file: str = os.getenv("LIBRARY_DB_FILE", "")

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Student Library API")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")

    def __post_init__(self) -> None:
        if not self.database_file:
            name = self.db_name or "library"
            self.database_file = name if name.endswith(".db") else f"{name}.db"
        if not self.api_base_url:
            self.api_base_url = f"http://{self.api_host}:{self.port}"

    def describe_database(self) -> str:
        """Connection summary without the password, for startup logs."""
        user = f"{self.db_user}@" if self.db_user else ""
        port = f":{self.db_port}" if self.db_port else ""
        return f"sqlite:///{self.database_file} (declared {user}{self.db_host}{port}/{self.db_name})"


settings = Settings()
