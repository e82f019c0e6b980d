from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    APP_NAME: str = "Patient Records API"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    AWS_REGION: str = "us-east-1"

    # Primary store (DynamoDB)
    PATIENTS_TABLE_NAME: str = "Patients"
    ADDRESS_INDEX_NAME: str = "AddressIndex"
    DYNAMODB_ENDPOINT_URL: Optional[str] = None  # e.g. http://localhost:8000 for DynamoDB Local
    DYNAMODB_CONNECT_TIMEOUT: float = 3.0
    DYNAMODB_READ_TIMEOUT: float = 10.0
    DYNAMODB_MAX_ATTEMPTS: int = 3

    # Secondary search index (OpenSearch). Empty domain disables search.
    OPENSEARCH_DOMAIN: str = ""
    OPENSEARCH_INDEX: str = "patients"
    OPENSEARCH_TIMEOUT: float = 5.0
    OPENSEARCH_MAX_RESULTS: int = 100

    # Identity provider (Cognito)
    COGNITO_USER_POOL_ID: str = ""
    COGNITO_CLIENT_ID: str = ""
    COGNITO_CLIENT_SECRET: Optional[str] = None  # only used by the token helper CLI
    COGNITO_TOKEN_USE: str = "access"

    # Pagination
    DEFAULT_PAGE_LIMIT: int = 50
    MAX_PAGE_LIMIT: int = 1000

    SEED_DEMO_DATA: bool = False
    CORS_ORIGINS: List[str] = ["*"]

    class Config:
        env_file = ".env"


settings = Settings()
