"""Configuration dataclasses, loadable from environment variables.

Every section exposes ``from_env()`` which reads the process environment (or
an explicit mapping, for tests) and falls back to the documented defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from memostore.exceptions import ConfigError

if TYPE_CHECKING:
    from collections.abc import Mapping

DEFAULT_STORE_PATH = "./memostore_data"
DEFAULT_BASE_URL = "https://dashscope.aliyuncs.com/api/v1/services/embeddings/multimodal-embedding"
DEFAULT_MODEL = "multimodal-embedding-v1"
DEFAULT_DIMENSION = 1024
DEFAULT_THROTTLE_INTERVAL_MS = 3_600_000


# ------------------------------------------------------------------
# Env helpers
# ------------------------------------------------------------------


def _env(environ: Mapping[str, str] | None) -> Mapping[str, str]:
    return os.environ if environ is None else environ


def _get_int(environ: Mapping[str, str], key: str, default: int | None) -> int | None:
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        msg = f"{key} must be an integer, got {raw!r}"
        raise ConfigError(msg) from exc


def _get_float(environ: Mapping[str, str], key: str, default: float | None) -> float | None:
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        msg = f"{key} must be a number, got {raw!r}"
        raise ConfigError(msg) from exc


def _get_bool(environ: Mapping[str, str], key: str, default: bool) -> bool:
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ------------------------------------------------------------------
# Sections
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StoreConfig:
    """Embedded store location.

    Attributes:
        path: Directory holding the SQLite database file.
        storage_type: ``"local"`` or ``"managed"``.  Managed storage is
            redundant on its own, so backups are disabled for it.
        query_timeout: Seconds before a store query raises ``StoreTimeoutError``.
    """

    path: Path = Path(DEFAULT_STORE_PATH)
    storage_type: str = "local"
    query_timeout: float = 10.0

    def __post_init__(self) -> None:
        if self.storage_type not in ("local", "managed"):
            msg = f"storage_type must be 'local' or 'managed', got {self.storage_type!r}"
            raise ConfigError(msg)
        if self.query_timeout <= 0:
            msg = f"query_timeout must be positive, got {self.query_timeout!r}"
            raise ConfigError(msg)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> StoreConfig:
        env = _env(environ)
        return cls(
            path=Path(env.get("MEMOSTORE_STORE_PATH", DEFAULT_STORE_PATH)),
            storage_type=env.get("MEMOSTORE_STORE_STORAGE_TYPE", "local"),
            query_timeout=_get_float(env, "MEMOSTORE_QUERY_TIMEOUT", 10.0),
        )


@dataclass(frozen=True, slots=True)
class EmbeddingConfig:
    """Multimodal embedding provider settings."""

    api_key: str = ""
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    dimension: int = DEFAULT_DIMENSION
    output_type: str | None = "dense"
    fps: float | None = None
    timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.dimension <= 0:
            msg = f"dimension must be positive, got {self.dimension!r}"
            raise ConfigError(msg)
        if self.timeout <= 0:
            msg = f"timeout must be positive, got {self.timeout!r}"
            raise ConfigError(msg)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EmbeddingConfig:
        env = _env(environ)
        return cls(
            api_key=env.get("DASHSCOPE_API_KEY", ""),
            model=env.get("MULTIMODAL_MODEL", DEFAULT_MODEL),
            base_url=env.get("MULTIMODAL_BASE_URL", DEFAULT_BASE_URL),
            dimension=_get_int(env, "MULTIMODAL_DIMENSION", DEFAULT_DIMENSION),
            output_type=env.get("MULTIMODAL_OUTPUT_TYPE", "dense") or None,
            fps=_get_float(env, "MULTIMODAL_FPS", None),
            timeout=_get_float(env, "MULTIMODAL_TIMEOUT", 30.0),
        )


@dataclass(frozen=True, slots=True)
class RetentionPolicy:
    """How many and how old backup snapshots may be kept.

    A snapshot survives only when it satisfies both bounds.  ``None`` disables
    a bound.
    """

    max_count: int | None = 10
    max_days: int | None = 30

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> RetentionPolicy:
        env = _env(environ)
        return cls(
            max_count=_get_int(env, "BACKUP_MAX_COUNT", 10) or None,
            max_days=_get_int(env, "BACKUP_MAX_DAYS", 30) or None,
        )


@dataclass(frozen=True, slots=True)
class S3Config:
    """S3-compatible backup destination (AWS S3, MinIO, OSS, ...)."""

    bucket: str
    prefix: str = "backups"
    access_key_id: str | None = None
    secret_access_key: str | None = None
    region: str = "us-east-1"
    endpoint: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> S3Config:
        env = _env(environ)
        bucket = env.get("BACKUP_S3_BUCKET", "")
        if not bucket:
            msg = "BACKUP_S3_BUCKET is required when BACKUP_STORAGE_TYPE=s3"
            raise ConfigError(msg)
        return cls(
            bucket=bucket,
            prefix=env.get("BACKUP_S3_PREFIX", "backups"),
            access_key_id=env.get("BACKUP_AWS_ACCESS_KEY_ID"),
            secret_access_key=env.get("BACKUP_AWS_SECRET_ACCESS_KEY"),
            region=env.get("BACKUP_AWS_REGION", "us-east-1"),
            endpoint=env.get("BACKUP_S3_ENDPOINT"),
        )


@dataclass(frozen=True, slots=True)
class BackupConfig:
    """Backup manager settings."""

    enabled: bool = False
    throttle_interval_ms: int = DEFAULT_THROTTLE_INTERVAL_MS
    storage_type: str = "local"
    local_path: Path = Path("./backups")
    s3: S3Config | None = None
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)

    def __post_init__(self) -> None:
        if self.storage_type not in ("local", "s3"):
            msg = f"backup storage_type must be 'local' or 's3', got {self.storage_type!r}"
            raise ConfigError(msg)
        if self.throttle_interval_ms < 0:
            msg = f"throttle_interval_ms must not be negative, got {self.throttle_interval_ms!r}"
            raise ConfigError(msg)
        if self.storage_type == "s3" and self.s3 is None:
            msg = "backup storage_type 's3' requires an S3Config"
            raise ConfigError(msg)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BackupConfig:
        env = _env(environ)
        storage_type = env.get("BACKUP_STORAGE_TYPE", "local")
        return cls(
            enabled=_get_bool(env, "BACKUP_ENABLED", False),
            throttle_interval_ms=_get_int(env, "BACKUP_THROTTLE_INTERVAL_MS", DEFAULT_THROTTLE_INTERVAL_MS),
            storage_type=storage_type,
            local_path=Path(env.get("BACKUP_LOCAL_PATH", "./backups")),
            s3=S3Config.from_env(env) if storage_type == "s3" else None,
            retention=RetentionPolicy.from_env(env),
        )


@dataclass(frozen=True, slots=True)
class MemoStoreConfig:
    """Top-level configuration wiring all sections together."""

    store: StoreConfig = field(default_factory=StoreConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> MemoStoreConfig:
        env = _env(environ)
        return cls(
            store=StoreConfig.from_env(env),
            embedding=EmbeddingConfig.from_env(env),
            backup=BackupConfig.from_env(env),
        )
