"""
Runtime configuration for the ClearX backend.

Values come from the process environment or a local .env file.
"""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongo_uri: Optional[str] = None
    database_name: str = "clearx"
    jwt_secret: str = "devsecret"
    node_env: str = "development"
    port: int = 5000

    firebase_project_id: Optional[str] = None
    firebase_client_email: Optional[str] = None
    firebase_private_key: Optional[str] = None
    firebase_service_account: str = "config/firebase-service-account.json"

    openai_api_key: Optional[str] = None
    assistant_model: str = "gpt-5-mini"

    rate_limit_per_minute: int = 200
    seed_source: str = "data/products.json"

    @property
    def is_production(self) -> bool:
        return self.node_env == "production"


settings = Settings()
