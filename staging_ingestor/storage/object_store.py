"""Object storage backends for uploaded source files."""

from __future__ import annotations

import io
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Protocol

from boto3.session import Session
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import ConfigurationError, StorageError
from ..utils.config import StorageSettings
from ..utils.logging import setup_logger

logger = setup_logger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(slots=True)
class StoredObject:
    """Where an uploaded file was written."""

    key: str
    location: str


@dataclass(slots=True)
class ObjectBody:
    """Readable byte stream for a stored object."""

    stream: BinaryIO
    size: int | None = None

    def close(self) -> None:
        self.stream.close()


class ObjectStore(Protocol):
    """Opaque durable blob store."""

    def put(self, key: str, data: bytes) -> StoredObject: ...

    def get(self, key: str) -> ObjectBody: ...


def build_object_key(filename: str, prefix: str | None = None) -> str:
    """Return ``<prefix>/<timestamp>-<filename>`` with unsafe characters replaced."""

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    safe_name = _UNSAFE_KEY_CHARS.sub("_", Path(filename).name) or "upload"
    key = f"{timestamp}-{safe_name}"
    if prefix:
        key = f"{_UNSAFE_KEY_CHARS.sub('_', prefix.lower())}/{key}"
    return key


class LocalObjectStore:
    """Stores objects beneath a local directory."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError(f"Object key escapes storage root: {key}")
        return path

    def put(self, key: str, data: bytes) -> StoredObject:
        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Failed to write object '{key}': {exc}") from exc
        return StoredObject(key=key, location=path.as_uri())

    def get(self, key: str) -> ObjectBody:
        path = self._path_for(key)
        try:
            size = path.stat().st_size
            stream = path.open("rb")
        except OSError as exc:
            raise StorageError(f"Failed to read object '{key}': {exc}") from exc
        return ObjectBody(stream=stream, size=size)


class _StreamingBodyReader(io.RawIOBase):
    """File-like adapter over a botocore ``StreamingBody``."""

    def __init__(self, body: Any):
        self._body = body

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        try:
            chunk = self._body.read(len(buffer))
        except (BotoCoreError, OSError) as exc:
            raise StorageError(f"Failed while streaming object: {exc}") from exc
        size = len(chunk)
        buffer[:size] = chunk
        return size

    def close(self) -> None:
        try:
            self._body.close()
        finally:
            super().close()


class S3ObjectStore:
    """Stores objects in an S3 bucket."""

    def __init__(self, bucket: str, client: Any):
        self.bucket = bucket
        self._client = client

    @classmethod
    def from_settings(cls, settings: StorageSettings) -> S3ObjectStore:
        if not settings.bucket:
            raise ConfigurationError("storage.bucket is required for the s3 backend")
        session_kwargs: dict[str, str] = {}
        if settings.profile:
            session_kwargs["profile_name"] = settings.profile
        if settings.region:
            session_kwargs["region_name"] = settings.region
        session = Session(**session_kwargs)
        client = session.client("s3", endpoint_url=settings.endpoint_url)
        return cls(settings.bucket, client)

    def put(self, key: str, data: bytes) -> StoredObject:
        try:
            self._client.put_object(Bucket=self.bucket, Key=key, Body=data)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to upload s3://{self.bucket}/{key}: {exc}") from exc
        return StoredObject(key=key, location=f"s3://{self.bucket}/{key}")

    def get(self, key: str) -> ObjectBody:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to fetch s3://{self.bucket}/{key}: {exc}") from exc
        stream = io.BufferedReader(_StreamingBodyReader(response["Body"]))
        return ObjectBody(stream=stream, size=response.get("ContentLength"))


def build_object_store(settings: StorageSettings) -> ObjectStore:
    """Construct the object store selected by configuration."""

    if settings.backend == "s3":
        logger.info("Using S3 object store for bucket %s", settings.bucket)
        return S3ObjectStore.from_settings(settings)
    logger.info("Using local object store at %s", settings.local_root)
    return LocalObjectStore(settings.local_root)
