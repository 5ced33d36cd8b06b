"""Configuration loaded from environment variables."""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Optional


DEFAULT_ECOUNT_URL = "http://sboapi.ecount.com"
DEFAULT_MODEL = "claude-sonnet-4-20250514"


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


@dataclass
class EcountCredentials:
    """Login credentials for one Ecount company account."""
    company_code: Optional[str]
    user_id: Optional[str]
    api_key: Optional[str]

    def is_complete(self) -> bool:
        return all(v and v.strip() for v in (self.company_code, self.user_id, self.api_key))


@dataclass
class EcountConfig:
    """Configuration for the Ecount API connection."""
    base_url: str = DEFAULT_ECOUNT_URL
    company_code: Optional[str] = None
    user_id: Optional[str] = None
    api_key: Optional[str] = None
    timeout_seconds: float = 30.0
    session_ttl_minutes: int = 30
    use_mock: bool = False  # simulate the vendor API in-process

    @classmethod
    def from_env(cls) -> "EcountConfig":
        """Load configuration from environment variables."""
        return cls(
            base_url=os.getenv("ECOUNT_BASE_URL", DEFAULT_ECOUNT_URL).rstrip("/"),
            company_code=os.getenv("ECOUNT_COMPANY_CODE"),
            user_id=os.getenv("ECOUNT_USER_ID"),
            api_key=os.getenv("ECOUNT_API_KEY"),
            timeout_seconds=_float_env("ECOUNT_TIMEOUT_SECONDS", 30.0),
            session_ttl_minutes=_int_env("ECOUNT_SESSION_TTL_MINUTES", 30),
            use_mock=os.getenv("ECOUNT_MOCK", "false").lower() == "true",
        )

    @property
    def credentials(self) -> EcountCredentials:
        return EcountCredentials(self.company_code, self.user_id, self.api_key)


@dataclass
class ParserConfig:
    """Configuration for the LLM order parser."""
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    max_tokens: int = 1000
    temperature: float = 0.1
    timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> "ParserConfig":
        return cls(
            api_key=os.getenv("ANTHROPIC_API_KEY"),
            model=os.getenv("LLM_MODEL", DEFAULT_MODEL),
            max_tokens=_int_env("LLM_MAX_TOKENS", 1000),
            temperature=_float_env("LLM_TEMPERATURE", 0.1),
            timeout_seconds=_float_env("LLM_TIMEOUT_SECONDS", 30.0),
        )


@dataclass
class Settings:
    """Top-level application settings."""
    ecount: EcountConfig = field(default_factory=EcountConfig)
    parser: ParserConfig = field(default_factory=ParserConfig)
    match_threshold: float = 0.2
    seed_database: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            ecount=EcountConfig.from_env(),
            parser=ParserConfig.from_env(),
            match_threshold=_float_env("MATCH_THRESHOLD", 0.2),
            seed_database=os.getenv("SEED_DATABASE", "false").lower() == "true",
        )
