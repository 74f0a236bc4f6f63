"""Application configuration using Pydantic settings"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Server Configuration
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000
    DEBUG: bool = False

    # API Configuration
    API_PREFIX: str = ""
    PROJECT_NAME: str = "Smart Product Server"
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Store
    STORE_BACKEND: str = "sql"  # sql | dynamodb | memory
    DATABASE_URL: str = "sqlite+aiosqlite:///./smart_product.db"
    REGISTRATION_TABLE: str = "smart-product-registration"
    COMMANDS_TABLE: str = "smart-product-commands"
    EVENTS_TABLE: str = "smart-product-events"
    SETTINGS_TABLE: str = "smart-product-settings"
    REFERENCE_TABLE: str = "smart-product-reference"
    TELEMETRY_TABLE: str = "smart-product-telemetry"

    # Pagination
    PAGE_MIN: int = 20
    QUERY_LIMIT: int = 50
    COUNT_QUERY_LIMIT: int = 100
    REGISTRATION_QUERY_LIMIT: int = 100
    PAGE_MAX_ITERATIONS: int = 10

    # AWS
    AWS_REGION: str = "us-east-1"
    AWS_ACCOUNT_ID: str = ""
    USER_POOL_ID: str = ""
    THING_TYPE: str = "SmartProduct"

    # Device transport
    TRANSPORT_BACKEND: str = "mqtt"  # mqtt | iot-data
    MQTT_BROKER_HOST: str = "localhost"
    MQTT_BROKER_PORT: int = 1883
    MQTT_BROKER_USERNAME: str = ""
    MQTT_BROKER_PASSWORD: str = ""
    MQTT_CA_CERTS: Optional[str] = None
    MQTT_CERTFILE: Optional[str] = None
    MQTT_KEYFILE: Optional[str] = None
    MQTT_CLIENT_ID: str = "smart_product_server"
    MQTT_SUBSCRIBE: bool = True
    SHADOW_TIMEOUT: float = 5.0
    COMMAND_TOPIC: str = "smartproduct/commands"
    EVENT_TOPIC: str = "smartproduct/events"
    TELEMETRY_TOPIC: str = "smartproduct/telemetry"
    CERTIFICATE_REGISTERED_TOPIC: str = "$aws/events/certificates/registered"

    # Security
    AUTH_SECRET_KEY: str = "CHANGE-ME-IN-PRODUCTION"
    AUTH_ALGORITHM: str = "HS256"
    AUTH_AUDIENCE: Optional[str] = None
    ADMIN_GROUP: str = "Admins"

    # Anonymous usage metrics
    ANONYMOUS_DATA: bool = False
    SOLUTION_ID: str = "SO0076"
    SOLUTION_UUID: str = ""
    METRICS_URL: str = "https://metrics.awssolutionsbuilder.com/generic"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
