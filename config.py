# config.py
from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal

load_dotenv(override=True)


class Settings(BaseSettings):
    """
    Defines the application's configuration settings.
    Every value can be supplied through the process environment or a .env file.
    """
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # --- LLM Provider Selection ---
    llm_provider: Literal['together'] = Field(
        default='together',
        description="The completion provider the relay forwards messages to."
    )

    # --- Provider Credentials ---
    # Optional here so the settings object can always be built; the missing key
    # is reported as a fatal error when the application starts.
    together_api_key: str | None = None

    # --- Together AI Model Configuration ---
    together_base_url: str = "https://api.together.xyz/v1"
    together_model_name: str = Field(
        default='meta-llama/Meta-Llama-3.1-8B-Instruct-Turbo',
        description="The chat model used for every completion request."
    )
    # None means the upstream call may take as long as it needs.
    upstream_timeout_seconds: float | None = None

    # --- Session Settings ---
    default_session_id: str = "default"
    max_history_messages: int = Field(
        default=20,
        ge=0,
        description="Maximum turns kept per session. 0 keeps the whole history."
    )

    # --- General Settings ---
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"


try:
    settings = Settings()
except Exception as e:
    print(f"FATAL: Failed to load application settings. Error: {e}")
    print("Please ensure the environment or the .env file contains valid values.")
    raise
