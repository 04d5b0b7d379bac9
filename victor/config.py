"""
Configuration Management Module

This module handles all application configuration using environment variables
with sensible defaults. It follows the 12-factor app methodology for configuration.

Usage:
    from victor.config import settings
    print(settings.azure.chat_url)

Environment variables are loaded from .env file (if present) and can be
overridden by system environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def get_env(key: str, default: str = "", required: bool = False) -> str:
    """
    Get an environment variable with optional default and validation.

    Args:
        key: The environment variable name
        default: Default value if not set
        required: If True, raises ValueError when not set

    Returns:
        The environment variable value or default

    Raises:
        ValueError: If required=True and the variable is not set
    """
    value = os.getenv(key, default)
    if required and not value:
        raise ValueError(f"Required environment variable '{key}' is not set")
    return value


def get_env_int(key: str, default: int) -> int:
    """Get an environment variable as integer."""
    return int(get_env(key, str(default)))


def get_env_float(key: str, default: float) -> float:
    """Get an environment variable as float."""
    return float(get_env(key, str(default)))


def get_env_bool(key: str, default: bool) -> bool:
    """Get an environment variable as boolean."""
    value = get_env(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


@dataclass
class AzureOpenAIConfig:
    """
    Azure OpenAI chat service configuration.

    Attributes:
        api_key: Azure OpenAI API key
        endpoint: Azure OpenAI endpoint URL
        api_version: API version string
        chat_deployment: Deployment name for chat model
    """
    api_key: str = field(default_factory=lambda: get_env("AZURE_OPENAI_API_KEY"))
    endpoint: str = field(default_factory=lambda: get_env("AZURE_OPENAI_ENDPOINT"))
    api_version: str = field(default_factory=lambda: get_env("AZURE_OPENAI_API_VERSION", "2024-08-01-preview"))
    chat_deployment: str = field(default_factory=lambda: get_env("AZURE_OPENAI_CHAT_DEPLOYMENT", "chat-model"))

    def validate(self) -> bool:
        """Validate that required Azure OpenAI settings are configured."""
        if not self.api_key:
            raise ValueError("AZURE_OPENAI_API_KEY is required")
        if not self.endpoint:
            raise ValueError("AZURE_OPENAI_ENDPOINT is required")
        return True

    @property
    def chat_url(self) -> str:
        """Get the full URL for chat completion API calls."""
        base = self.endpoint.rstrip("/")
        return f"{base}/openai/deployments/{self.chat_deployment}/chat/completions?api-version={self.api_version}"


@dataclass
class LLMConfig:
    """
    LLM generation configuration.

    Attributes:
        temperature: Sampling temperature (0.0-1.0)
        max_tokens: Maximum tokens in response
        connect_timeout_s: Seconds allowed to open the stream
        read_timeout_s: Seconds allowed for the whole streamed reply
    """
    temperature: float = field(default_factory=lambda: get_env_float("LLM_TEMPERATURE", 0.7))
    max_tokens: int = field(default_factory=lambda: get_env_int("LLM_MAX_TOKENS", 800))
    connect_timeout_s: float = field(default_factory=lambda: get_env_float("LLM_CONNECT_TIMEOUT_S", 10.0))
    read_timeout_s: float = field(default_factory=lambda: get_env_float("LLM_READ_TIMEOUT_S", 60.0))


@dataclass
class SpeechConfig:
    """
    Azure Speech configuration shared by capture and playback.

    Attributes:
        api_key: Azure Speech API key
        region: Azure region of the Speech resource
        language: Recognition locale, fixed for the whole session
    """
    api_key: str = field(default_factory=lambda: get_env("AZURE_SPEECH_API_KEY"))
    region: str = field(default_factory=lambda: get_env("AZURE_SPEECH_REGION"))
    language: str = field(default_factory=lambda: get_env("SPEECH_LANGUAGE", "en-US"))

    @property
    def is_configured(self) -> bool:
        """Check whether speech credentials are present."""
        return bool(self.api_key and self.region)


@dataclass
class VoiceConfig:
    """
    Voice output preferences.

    Attributes:
        output_enabled: Speak finalized assistant messages
        gender: Preferred voice gender ("male" or "female")
    """
    output_enabled: bool = field(default_factory=lambda: get_env_bool("VOICE_OUTPUT_ENABLED", True))
    gender: str = field(default_factory=lambda: get_env("VOICE_GENDER", "male"))


@dataclass
class PersonaConfig:
    """Names used in the system prompt and narration."""
    assistant_name: str = field(default_factory=lambda: get_env("ASSISTANT_NAME", "Victor"))
    user_name: str = field(default_factory=lambda: get_env("USER_NAME", "Srabon"))


@dataclass
class GamesConfig:
    """
    Embedded game configuration.

    Attributes:
        ai_move_delay_s: Pause before the opponent answers a human ply
    """
    ai_move_delay_s: float = field(default_factory=lambda: get_env_float("AI_MOVE_DELAY_S", 0.5))


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        file: Optional log file path
    """
    level: str = field(default_factory=lambda: get_env("LOG_LEVEL", "INFO"))
    file: Optional[str] = field(default_factory=lambda: get_env("LOG_FILE") or None)


@dataclass
class Settings:
    """
    Main settings container aggregating all configuration sections.

    Access via the singleton `settings` instance.

    Example:
        from victor.config import settings

        settings.azure.validate()
        delay = settings.games.ai_move_delay_s
    """
    azure: AzureOpenAIConfig = field(default_factory=AzureOpenAIConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    speech: SpeechConfig = field(default_factory=SpeechConfig)
    voice: VoiceConfig = field(default_factory=VoiceConfig)
    persona: PersonaConfig = field(default_factory=PersonaConfig)
    games: GamesConfig = field(default_factory=GamesConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    app_env: str = field(default_factory=lambda: get_env("APP_ENV", "development"))

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    def validate_all(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ValueError: If any validation fails
        """
        self.azure.validate()
        if self.voice.gender.lower() not in ("male", "female"):
            raise ValueError("VOICE_GENDER must be 'male' or 'female'")
        return True


# Singleton settings instance
# Import this in other modules: from victor.config import settings
settings = Settings()
