"""Runtime configuration from environment variables and an optional .env file.

Variables (all optional):

    LLM_PROVIDER_URL     text-completion backend   http://localhost:5001
    LLM_API_KEY          bearer token              (none)
    LLM_PROVIDER_FORMAT  koboldcpp | openai        koboldcpp
    LLM_MODEL            model id (openai format)  (none)
    LLM_TIMEOUT          seconds                   120
    LLM_MAX_TOKENS       completion length limit   0 (backend default)
    RETRY_ATTEMPTS       retries on rate limits    4
    RETRY_BASE_DELAY     first backoff, seconds    1.0
    MAX_HISTORY_TURNS    turns sent to the model   6
    MAX_HISTORY_CHARS    chars kept per turn       120
    SPEECH_CACHE_SIZE    option texts kept spoken  256
    LOG_LEVEL                                      INFO
    HOST / PORT          dev server bind           0.0.0.0 / 13013
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

from story_quiz.llm import HttpLLM, ProviderFormat

logger = logging.getLogger(__name__)

ENV_FILE = Path(__file__).parent.parent / ".env"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %d", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


class Settings(BaseModel):
    provider_url: str = "http://localhost:5001"
    api_key: str = ""
    provider_format: ProviderFormat = "koboldcpp"
    model: str = ""
    timeout: float = 120.0
    max_tokens: int = 0
    retry_attempts: int = 4
    retry_base_delay: float = 1.0
    max_history_turns: int = 6
    max_history_chars: int = 120
    speech_cache_size: int = 256
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 13013

    @classmethod
    def from_env(cls, env_file: Path | None = ENV_FILE) -> Settings:
        if env_file is not None:
            load_dotenv(env_file)

        provider_format = os.getenv("LLM_PROVIDER_FORMAT", "koboldcpp").strip().lower()
        if provider_format not in ("koboldcpp", "openai"):
            logger.warning("Unknown LLM_PROVIDER_FORMAT=%r, using koboldcpp", provider_format)
            provider_format = "koboldcpp"

        return cls(
            provider_url=os.getenv("LLM_PROVIDER_URL", "http://localhost:5001"),
            api_key=os.getenv("LLM_API_KEY", ""),
            provider_format=provider_format,
            model=os.getenv("LLM_MODEL", ""),
            timeout=_env_float("LLM_TIMEOUT", 120.0),
            max_tokens=_env_int("LLM_MAX_TOKENS", 0),
            retry_attempts=_env_int("RETRY_ATTEMPTS", 4),
            retry_base_delay=_env_float("RETRY_BASE_DELAY", 1.0),
            max_history_turns=_env_int("MAX_HISTORY_TURNS", 6),
            max_history_chars=_env_int("MAX_HISTORY_CHARS", 120),
            speech_cache_size=_env_int("SPEECH_CACHE_SIZE", 256),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_env_int("PORT", 13013),
        )

    def build_llm(self) -> HttpLLM:
        return HttpLLM(
            provider_url=self.provider_url,
            api_key=self.api_key,
            provider_format=self.provider_format,
            model=self.model,
            timeout=self.timeout,
            max_tokens=self.max_tokens,
        )
