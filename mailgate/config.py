# mailgate/config.py
"""
Service configuration, built once at startup and passed to collaborators.

Env vars:
- DATABASE_URL (default: sqlite:///./mailgate.db)
- JWT_SECRET_KEY, JWT_ISSUER, JWT_AUDIENCE — required
- JWT_EXPIRATION_MINUTES (default: 60)
- API_KEY — shared secret accepted in the API key header (empty = no key accepted)
- API_KEY_HEADER (default: X-API-Key)
- LLM_PROVIDER=azure|openai|anthropic (default: azure)
- MOCK_LLM (default: true)
- AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_API_KEY, AZURE_OPENAI_DEPLOYMENT, AZURE_OPENAI_API_VERSION
- OPENAI_API_KEY, ANTHROPIC_API_KEY, LLM_MODEL
- LLM_TEMPERATURE (default: 0.7), LLM_MAX_TOKENS (default: 1000), LLM_TIMEOUT (default: 30)
"""

import os
from dataclasses import dataclass
from typing import List, Optional

from mailgate.errors import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./mailgate.db"
LLM_PROVIDERS = ("azure", "openai", "anthropic")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _env_str(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL

    jwt_secret_key: str = ""
    jwt_issuer: str = ""
    jwt_audience: str = ""
    jwt_expiration_minutes: int = 60

    api_key: str = ""
    api_key_header: str = "X-API-Key"

    llm_provider: str = "azure"
    mock_llm: bool = True
    azure_openai_endpoint: str = ""
    azure_openai_api_key: str = ""
    azure_openai_deployment: str = ""
    azure_openai_api_version: str = "2024-02-01"
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    llm_model: Optional[str] = None
    llm_temperature: float = 0.7
    llm_max_tokens: int = 1000
    llm_timeout: int = 30

    @classmethod
    def from_env(cls) -> "Settings":
        try:
            return cls(
                database_url=_env_str("DATABASE_URL", DEFAULT_DATABASE_URL),
                jwt_secret_key=_env_str("JWT_SECRET_KEY"),
                jwt_issuer=_env_str("JWT_ISSUER"),
                jwt_audience=_env_str("JWT_AUDIENCE"),
                jwt_expiration_minutes=int(_env_str("JWT_EXPIRATION_MINUTES", "60")),
                api_key=_env_str("API_KEY"),
                api_key_header=_env_str("API_KEY_HEADER", "X-API-Key"),
                llm_provider=_env_str("LLM_PROVIDER", "azure").lower(),
                mock_llm=_env_bool("MOCK_LLM", "true"),
                azure_openai_endpoint=_env_str("AZURE_OPENAI_ENDPOINT"),
                azure_openai_api_key=_env_str("AZURE_OPENAI_API_KEY"),
                azure_openai_deployment=_env_str("AZURE_OPENAI_DEPLOYMENT"),
                azure_openai_api_version=_env_str("AZURE_OPENAI_API_VERSION", "2024-02-01"),
                openai_api_key=_env_str("OPENAI_API_KEY"),
                anthropic_api_key=_env_str("ANTHROPIC_API_KEY"),
                llm_model=_env_str("LLM_MODEL") or None,
                llm_temperature=float(_env_str("LLM_TEMPERATURE", "0.7")),
                llm_max_tokens=int(_env_str("LLM_MAX_TOKENS", "1000")),
                llm_timeout=int(_env_str("LLM_TIMEOUT", "30")),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}") from e

    def missing_required(self) -> List[str]:
        missing = []
        if not self.jwt_secret_key:
            missing.append("JWT_SECRET_KEY")
        if not self.jwt_issuer:
            missing.append("JWT_ISSUER")
        if not self.jwt_audience:
            missing.append("JWT_AUDIENCE")
        return missing

    def validate(self) -> "Settings":
        """Raise ConfigurationError for settings the service cannot boot without."""
        missing = self.missing_required()
        if missing:
            raise ConfigurationError("Missing required settings: " + ", ".join(missing))
        if self.jwt_expiration_minutes <= 0:
            raise ConfigurationError("JWT_EXPIRATION_MINUTES must be positive")
        if self.llm_provider not in LLM_PROVIDERS:
            raise ConfigurationError(
                f"LLM_PROVIDER must be one of {', '.join(LLM_PROVIDERS)}, got '{self.llm_provider}'"
            )
        if not self.api_key_header:
            raise ConfigurationError("API_KEY_HEADER must not be empty")
        return self
