# config/settings.py

from typing import List, Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from config import MAX_HISTORY_LENGTH


class OpenAIConfig(BaseModel):
    """Config for the chat-completions provider."""

    api_key: str = Field("", repr=False)
    base_url: str = "https://api.openai.com/v1"
    chat_model: str = "gpt-3.5-turbo"
    request_timeout_seconds: float = 30.0
    temperature: float = 0.7
    max_tokens: int = 500


class ChatbotConfig(BaseModel):
    """Persona and presentation settings of the shopping assistant."""

    name: str = "Juicy"
    greeting: str = "Hello! I'm your AI shopping assistant. How can I help you today?"
    system_prompt: str = "You are a helpful AI shopping assistant. The customer's name is <customer-name>."
    base_url: str = "http://localhost:3000"
    image_path: str = "/assets/public/images/products/"


class HistoryConfig(BaseModel):
    """Config for the per-user conversation window."""

    max_history_length: int = MAX_HISTORY_LENGTH
    pin_greeting: bool = True
    redis_url: Optional[str] = None
    redis_prefix: str = "chat"


class ToolsConfig(BaseModel):
    """Limits applied by the tool dispatcher."""

    sql_row_limit: int = 100
    sql_timeout_seconds: float = 10.0
    shell_timeout_seconds: float = 30.0
    shell_requires_admin: bool = True
    coupon_min_discount: int = 10
    coupon_max_discount: int = 20
    search_limit: int = 6
    catalog_sample_size: int = 8


class GuardrailConfig(BaseModel):
    """Tables no SQL statement proposed by the model may touch."""

    restricted_tables: List[str] = ["SecurityAnswers"]


class DatabaseConfig(BaseModel):
    url: str = "sqlite://"
    seed_demo_data: bool = True
    echo: bool = False


class AuthConfig(BaseModel):
    jwt_secret: str = Field("change-me", repr=False)
    jwt_algorithm: str = "HS256"


class LoggingConfig(BaseModel):
    """Basic logging config."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_logging: bool = True


class ModulesConfig(BaseModel):
    history_store_name: str = "InMemoryHistoryStore"
    shop_backend_name: str = "ShopLocalClient"
    message_store_name: str = "ChatLogSQLAlchemy"
    router_name: str = "NaiveRouter"


class Settings(BaseSettings):
    """Top-level app settings loaded from environment / .env."""

    env: Literal["dev", "staging", "prod"] = "dev"

    modules: ModulesConfig = ModulesConfig()
    openai: OpenAIConfig = OpenAIConfig()
    chatbot: ChatbotConfig = ChatbotConfig()
    history: HistoryConfig = HistoryConfig()
    tools: ToolsConfig = ToolsConfig()
    guardrails: GuardrailConfig = GuardrailConfig()
    database: DatabaseConfig = DatabaseConfig()
    auth: AuthConfig = AuthConfig()
    logging: LoggingConfig = LoggingConfig()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="APP_",              # all vars start with APP_
        env_nested_delimiter="__",      # APP_OPENAI__API_KEY, etc.
        case_sensitive=False,
        extra="ignore",
    )


# Single global instance you import everywhere
settings = Settings()
