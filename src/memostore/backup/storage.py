"""Storage adapters — where backup artifacts are written, listed and deleted."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from memostore.exceptions import BackupError, ConfigError

if TYPE_CHECKING:
    from memostore.config import BackupConfig, S3Config

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StorageEntry:
    """An object held by a storage adapter.

    Attributes:
        path: Adapter-relative POSIX path (``2024-05-01/backup_....tar.gz``).
        size_bytes: Object size.
        last_modified: Modification time, epoch milliseconds.
    """

    path: str
    size_bytes: int
    last_modified: int


@runtime_checkable
class StorageAdapter(Protocol):
    """Capability contract for backup destinations."""

    @property
    def location(self) -> str:
        """Human-readable destination, e.g. ``/var/backups`` or ``s3://bucket/prefix``."""
        ...

    async def write(self, path: str, data: bytes) -> str:
        """Store *data* at *path*; return the full location written."""
        ...

    async def list(self, prefix: str = "") -> list[StorageEntry]:
        """Entries whose path starts with *prefix*."""
        ...

    async def delete(self, path: str) -> None:
        """Remove *path*. Missing objects are not an error."""
        ...


def _normalize(path: str) -> str:
    parts = PurePosixPath(path.replace("\\", "/")).parts
    if not parts or any(p in ("..", "") for p in parts) or parts[0] == "/":
        msg = f"Invalid storage path: {path!r}"
        raise BackupError(msg)
    return "/".join(parts)


# ------------------------------------------------------------------
# Local filesystem
# ------------------------------------------------------------------


class LocalStorageAdapter:
    """Stores artifacts under a local directory.  File I/O runs in a worker thread."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def location(self) -> str:
        return str(self._root)

    async def write(self, path: str, data: bytes) -> str:
        target = self._root / _normalize(path)
        try:
            await asyncio.to_thread(_write_file, target, data)
        except OSError as exc:
            msg = f"Failed to write {target}: {exc}"
            raise BackupError(msg) from exc
        return str(target)

    async def list(self, prefix: str = "") -> list[StorageEntry]:
        try:
            return await asyncio.to_thread(self._scan, prefix)
        except OSError as exc:
            msg = f"Failed to list {self._root}: {exc}"
            raise BackupError(msg) from exc

    async def delete(self, path: str) -> None:
        target = self._root / _normalize(path)
        try:
            await asyncio.to_thread(target.unlink, missing_ok=True)
        except OSError as exc:
            msg = f"Failed to delete {target}: {exc}"
            raise BackupError(msg) from exc

    def _scan(self, prefix: str) -> list[StorageEntry]:
        if not self._root.exists():
            return []
        entries: list[StorageEntry] = []
        for file in self._root.rglob("*"):
            if not file.is_file():
                continue
            rel = file.relative_to(self._root).as_posix()
            if not rel.startswith(prefix):
                continue
            stat = file.stat()
            entries.append(StorageEntry(rel, stat.st_size, int(stat.st_mtime * 1000)))
        return sorted(entries, key=lambda e: e.path)


def _write_file(target: Path, data: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(target.name + ".part")
    tmp.write_bytes(data)
    tmp.replace(target)


# ------------------------------------------------------------------
# S3-compatible object storage
# ------------------------------------------------------------------


class S3StorageAdapter:
    """Stores artifacts in an S3-compatible bucket (AWS S3, MinIO, OSS...).

    boto3 is synchronous, so every call runs in a worker thread.  Pass
    *client* to supply a preconfigured (or mocked) boto3 S3 client.

    Requires the ``boto3`` package::

        pip install memostore[s3]
    """

    def __init__(
        self,
        bucket: str,
        *,
        prefix: str = "backups",
        region: str | None = None,
        endpoint: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        client: Any = None,
    ) -> None:
        try:
            import boto3
            from botocore.exceptions import BotoCoreError, ClientError
        except ImportError as exc:  # pragma: no cover - dependency missing
            msg = "boto3 is required for S3StorageAdapter. Install it with: pip install memostore[s3]"
            raise ImportError(msg) from exc

        self._bucket = bucket
        self._prefix = prefix.strip("/")
        self._errors: tuple[type[Exception], ...] = (BotoCoreError, ClientError)
        if client is None:
            client = boto3.client(
                "s3",
                region_name=region,
                endpoint_url=endpoint,
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
            )
        self._client = client

    @classmethod
    def from_config(cls, config: S3Config, *, client: Any = None) -> S3StorageAdapter:
        return cls(
            config.bucket,
            prefix=config.prefix,
            region=config.region,
            endpoint=config.endpoint,
            access_key_id=config.access_key_id,
            secret_access_key=config.secret_access_key,
            client=client,
        )

    @property
    def location(self) -> str:
        return f"s3://{self._bucket}/{self._prefix}" if self._prefix else f"s3://{self._bucket}"

    async def write(self, path: str, data: bytes) -> str:
        key = self._key(path)
        await self._call("upload", self._client.put_object, Bucket=self._bucket, Key=key, Body=data)
        return f"s3://{self._bucket}/{key}"

    async def list(self, prefix: str = "") -> list[StorageEntry]:
        return await self._call("list", self._list_sync, prefix)

    async def delete(self, path: str) -> None:
        await self._call("delete", self._client.delete_object, Bucket=self._bucket, Key=self._key(path))

    def _key(self, path: str) -> str:
        rel = _normalize(path)
        return f"{self._prefix}/{rel}" if self._prefix else rel

    def _list_sync(self, prefix: str) -> list[StorageEntry]:
        full_prefix = f"{self._prefix}/{prefix}" if self._prefix else prefix
        strip = len(self._prefix) + 1 if self._prefix else 0
        entries: list[StorageEntry] = []
        paginator = self._client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self._bucket, Prefix=full_prefix):
            for obj in page.get("Contents", []):
                entries.append(
                    StorageEntry(
                        path=obj["Key"][strip:],
                        size_bytes=int(obj.get("Size", 0)),
                        last_modified=int(obj["LastModified"].timestamp() * 1000)
                        if obj.get("LastModified") is not None
                        else 0,
                    )
                )
        return entries

    async def _call(self, action: str, fn: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except self._errors as exc:
            msg = f"S3 {action} failed for bucket {self._bucket}: {exc}"
            raise BackupError(msg) from exc


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------


def create_storage_adapter(config: BackupConfig) -> StorageAdapter:
    """Build the adapter selected by ``config.storage_type``."""
    if config.storage_type == "local":
        return LocalStorageAdapter(config.local_path)
    if config.storage_type == "s3":
        if config.s3 is None:
            msg = "S3 backup storage requires an S3Config"
            raise ConfigError(msg)
        return S3StorageAdapter.from_config(config.s3)
    msg = f"Unsupported backup storage type: {config.storage_type!r}"
    raise ConfigError(msg)
