from dotenv import load_dotenv
from dataclasses import dataclass
from typing import Optional
from pathlib import Path
import json
import os

from harvest.constants import (
    DEFAULT_CAPTCHA_SERVICE,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_RETRY_DELAY_SECONDS,
    DEFAULT_USER_AGENT,
    PROGRESS_REPORT_INTERVAL,
)

load_dotenv()  # Loads variables from .env file


class Settings:
    """
    Manages application settings loaded from environment variables.
    """
    CAPTCHA_API_KEY = os.getenv("HARVEST_CAPTCHA_API_KEY") or os.getenv("TWOCAPTCHA_API_KEY")
    CAPTCHA_SERVICE = os.getenv("HARVEST_CAPTCHA_SERVICE", DEFAULT_CAPTCHA_SERVICE)
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///harvest.db")  # Default to SQLite
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    OUTPUT_DIR = os.getenv("HARVEST_OUTPUT_DIR", "harvests")


settings = Settings()


@dataclass
class HarvestConfig:
    """Runtime knobs of the extraction pipeline."""
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    progress_interval: int = PROGRESS_REPORT_INTERVAL
    default_user_agent: str = DEFAULT_USER_AGENT
    captcha_service: str = DEFAULT_CAPTCHA_SERVICE
    captcha_api_key: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "HarvestConfig":
        """Load configuration from environment variables.

        Environment variables are prefixed with HARVEST_,
        e.g. HARVEST_REQUEST_TIMEOUT=10. The CAPTCHA key also falls back
        to TWOCAPTCHA_API_KEY.

        Returns:
            HarvestConfig with values from environment
        """
        config = cls()
        prefix = "HARVEST_"

        for field_name, field_def in config.__dataclass_fields__.items():
            env_value = os.getenv(f"{prefix}{field_name.upper()}")
            if env_value is None:
                continue

            field_type = field_def.type
            try:
                if field_type == int:
                    setattr(config, field_name, int(env_value))
                elif field_type == float:
                    setattr(config, field_name, float(env_value))
                else:
                    setattr(config, field_name, env_value)
            except ValueError:
                pass  # Keep default if conversion fails

        if config.captcha_api_key is None:
            config.captcha_api_key = os.getenv("TWOCAPTCHA_API_KEY")
        if os.getenv("LOG_LEVEL") and not os.getenv(f"{prefix}LOG_LEVEL"):
            config.log_level = os.getenv("LOG_LEVEL")

        return config

    @classmethod
    def from_file(cls, path: str) -> "HarvestConfig":
        """Load configuration from a JSON file.

        The file may hold the values at top level or under a "harvest" key.
        Unknown keys are ignored and a missing file yields the defaults.

        Args:
            path: Path to JSON configuration file

        Returns:
            HarvestConfig with values from file
        """
        config = cls()
        file_path = Path(path)

        if not file_path.exists():
            return config

        with open(file_path, 'r') as f:
            data = json.load(f)

        section = data.get('harvest', data)

        for field_name in config.__dataclass_fields__:
            if field_name in section:
                setattr(config, field_name, section[field_name])

        return config

    def to_dict(self) -> dict:
        """Convert configuration to a dictionary, with the API key masked."""
        data = {
            field_name: getattr(self, field_name)
            for field_name in self.__dataclass_fields__
        }
        if data["captcha_api_key"]:
            data["captcha_api_key"] = "***"
        return data
