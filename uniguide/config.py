"""
Configuration
Environment-sourced settings passed explicitly to the services that need them
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"Environment variable {name} must be an integer, got {raw!r}")


LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _get_log_level(env: Mapping[str, str]) -> str:
    level = (env.get("LOG_LEVEL") or "INFO").upper()
    if level not in LOG_LEVELS:
        raise ConfigurationError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {level!r}")
    return level


@dataclass(frozen=True)
class ChunkPolicy:
    """Chunking and pacing for one prediction stage"""
    chunk_size: int
    chunk_delay_ms: int


@dataclass(frozen=True)
class PredictionServiceConfig:
    """
    Settings for the remote prediction service and the batch invoker

    Attributes:
        hostname: Prediction service host
        port: Prediction service port
        path: Path prefix prepended to every endpoint
        timeout_ms: Per-request timeout
        batch_concurrency: Maximum chunk calls in flight
        max_retries: Retries per chunk after the first attempt
        retry_base_delay_ms: Base of the exponential backoff
        retry_max_delay_ms: Upper bound for a single backoff sleep
        request_delay_ms: Cooldown between dispatches of the same worker
        l1: Chunk policy for L1 requests
        l2: Chunk policy for L2 requests
        l3: Chunk policy for L3 requests
    """
    hostname: str = "localhost"
    port: int = 8000
    path: str = ""
    timeout_ms: int = 90000
    batch_concurrency: int = 3
    max_retries: int = 2
    retry_base_delay_ms: int = 2000
    retry_max_delay_ms: int = 30000
    request_delay_ms: int = 100
    l1: ChunkPolicy = field(default_factory=lambda: ChunkPolicy(chunk_size=10, chunk_delay_ms=100))
    l2: ChunkPolicy = field(default_factory=lambda: ChunkPolicy(chunk_size=3, chunk_delay_ms=100))
    l3: ChunkPolicy = field(default_factory=lambda: ChunkPolicy(chunk_size=3, chunk_delay_ms=100))

    @property
    def base_url(self) -> str:
        return f"http://{self.hostname}:{self.port}{self.path}"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PredictionServiceConfig":
        """
        Build the configuration from environment variables

        Args:
            env: Mapping to read from (defaults to os.environ)

        Returns:
            PredictionServiceConfig: Populated configuration

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed
        """
        env = os.environ if env is None else env
        return cls(
            hostname=env.get("SERVICE_SERVER_HOSTNAME", "localhost"),
            port=_get_int(env, "SERVICE_SERVER_PORT", 8000),
            path=env.get("SERVICE_SERVER_PATH", ""),
            timeout_ms=_get_int(env, "SERVICE_TIMEOUT_IN_MS", 90000),
            batch_concurrency=_get_int(env, "SERVICE_BATCH_CONCURRENCY", 3),
            max_retries=_get_int(env, "SERVICE_MAX_RETRIES", 2),
            retry_base_delay_ms=_get_int(env, "SERVICE_RETRY_BASE_DELAY_MS", 2000),
            retry_max_delay_ms=_get_int(env, "SERVICE_RETRY_MAX_DELAY_MS", 30000),
            request_delay_ms=_get_int(env, "SERVICE_REQUEST_DELAY_MS", 100),
            l1=ChunkPolicy(
                chunk_size=_get_int(env, "SERVICE_L1_CHUNK_SIZE_INPUT_ARRAY", 10),
                chunk_delay_ms=_get_int(env, "SERVICE_L1_CHUNK_DELAY_MS", 100),
            ),
            l2=ChunkPolicy(
                chunk_size=_get_int(env, "SERVICE_L2_CHUNK_SIZE_INPUT_ARRAY", 3),
                chunk_delay_ms=_get_int(env, "SERVICE_L2_CHUNK_DELAY_MS", 100),
            ),
            l3=ChunkPolicy(
                chunk_size=_get_int(env, "SERVICE_L3_CHUNK_SIZE_INPUT_ARRAY", 3),
                chunk_delay_ms=_get_int(env, "SERVICE_L3_CHUNK_DELAY_MS", 100),
            ),
        )


@dataclass(frozen=True)
class AppConfig:
    """Top-level application settings"""
    database_path: str = "uniguide.db"
    log_level: str = "INFO"
    prediction: PredictionServiceConfig = field(default_factory=PredictionServiceConfig)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "AppConfig":
        if env is None:
            load_dotenv()
            env = os.environ
        return cls(
            database_path=env.get("DATABASE_PATH", "uniguide.db"),
            log_level=_get_log_level(env),
            prediction=PredictionServiceConfig.from_env(env),
        )
