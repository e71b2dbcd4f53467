"""
Storage Service - keyed byte stores for customization documents

Supports AWS S3, Cloudflare R2, MinIO and other S3-compatible services, plus a
local directory backend for single-node deployments and an in-memory backend
for tests and development.

All backends share the same contract:
- read(key) returns None when the key does not exist
- delete(key) is idempotent
- any other failure raises StorageError
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from fulcrum_shipping.core.config import Settings, settings
from fulcrum_shipping.core.exceptions import ConfigurationError, StorageError

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


class ByteStore(ABC):
    """Keyed byte storage."""

    @abstractmethod
    async def read(self, key: str) -> Optional[bytes]:
        ...

    @abstractmethod
    async def write(self, key: str, data: bytes) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    async def list(self, prefix: str = "") -> List[str]:
        ...


class InMemoryByteStore(ByteStore):
    """Process-local store. Contents are lost on restart."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self._objects: Dict[str, bytes] = dict(initial or {})

    async def read(self, key: str) -> Optional[bytes]:
        return self._objects.get(key)

    async def write(self, key: str, data: bytes) -> None:
        self._objects[key] = bytes(data)

    async def delete(self, key: str) -> bool:
        return self._objects.pop(key, None) is not None

    async def list(self, prefix: str = "") -> List[str]:
        return sorted(key for key in self._objects if key.startswith(prefix))


class LocalByteStore(ByteStore):
    """Files under a root directory; keys map to relative paths."""

    def __init__(self, root: str):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError(f"Key escapes storage root: {key}", key=key)
        return path

    async def read(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Read failed: {e}", key=key) from e

    async def write(self, key: str, data: bytes) -> None:
        path = self._path(key)

        def _write():
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(path.name + ".tmp")
            tmp_path.write_bytes(data)
            tmp_path.replace(path)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"Write failed: {e}", key=key) from e

    async def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            await asyncio.to_thread(path.unlink)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Delete failed: {e}", key=key) from e

    async def list(self, prefix: str = "") -> List[str]:
        if not self.root.exists():
            return []
        keys = [
            path.relative_to(self.root).as_posix()
            for path in self.root.rglob("*")
            if path.is_file() and not path.name.endswith(".tmp")
        ]
        return sorted(key for key in keys if key.startswith(prefix))


class S3ByteStore(ByteStore):
    """
    S3-compatible byte store.

    Handles AWS S3, Cloudflare R2, or any S3-compatible service.
    """

    def __init__(self, bucket: str, config: Optional[Settings] = None):
        self._config = config or settings
        self._client = None
        self._bucket = bucket
        self._region = self._config.S3_REGION

    @property
    def client(self):
        """Lazy-load S3 client."""
        if self._client is None:
            config = Config(
                signature_version='s3v4',
                retries={'max_attempts': 3, 'mode': 'standard'}
            )

            client_kwargs = {
                'service_name': 's3',
                'region_name': self._region,
                'config': config,
            }
            # Fall back to the default credential chain when keys are unset
            if self._config.S3_ACCESS_KEY and self._config.S3_SECRET_KEY:
                client_kwargs['aws_access_key_id'] = self._config.S3_ACCESS_KEY
                client_kwargs['aws_secret_access_key'] = self._config.S3_SECRET_KEY

            # Custom endpoint for R2/MinIO
            if self._config.S3_ENDPOINT:
                client_kwargs['endpoint_url'] = self._config.S3_ENDPOINT

            self._client = boto3.client(**client_kwargs)

        return self._client

    def is_configured(self) -> bool:
        return bool(self._bucket)

    @staticmethod
    def _error_code(e: ClientError) -> str:
        return e.response.get('Error', {}).get('Code', 'Unknown')

    async def read(self, key: str) -> Optional[bytes]:
        def _read() -> bytes:
            response = self.client.get_object(Bucket=self._bucket, Key=key)
            return response['Body'].read()

        try:
            return await asyncio.to_thread(_read)
        except ClientError as e:
            error_code = self._error_code(e)
            if error_code in NOT_FOUND_CODES:
                return None
            error_msg = e.response.get('Error', {}).get('Message', str(e))
            logger.error(f"S3 read failed for {key}: {error_code} - {error_msg}")
            raise StorageError(f"Read failed: {error_msg}", key=key) from e
        except BotoCoreError as e:
            logger.error(f"S3 read error for {key}: {e}")
            raise StorageError(f"Read failed: {e}", key=key) from e

    async def write(self, key: str, data: bytes) -> None:
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType="application/json",
            )
            logger.debug(f"Wrote {len(data)} bytes to s3://{self._bucket}/{key}")
        except ClientError as e:
            error_code = self._error_code(e)
            error_msg = e.response.get('Error', {}).get('Message', str(e))
            logger.error(f"S3 write failed for {key}: {error_code} - {error_msg}")
            raise StorageError(f"Write failed: {error_msg}", key=key) from e
        except BotoCoreError as e:
            logger.error(f"S3 write error for {key}: {e}")
            raise StorageError(f"Write failed: {e}", key=key) from e

    async def delete(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self._bucket, Key=key)
        except ClientError as e:
            if self._error_code(e) in NOT_FOUND_CODES:
                return False
            raise StorageError(f"Delete failed: {e}", key=key) from e
        except BotoCoreError as e:
            raise StorageError(f"Delete failed: {e}", key=key) from e

        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self._bucket, Key=key)
            logger.info(f"Deleted s3://{self._bucket}/{key}")
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 delete failed for {key}: {e}")
            raise StorageError(f"Delete failed: {e}", key=key) from e

    async def list(self, prefix: str = "") -> List[str]:
        def _list() -> List[str]:
            keys: List[str] = []
            paginator = self.client.get_paginator('list_objects_v2')
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                keys.extend(item['Key'] for item in page.get('Contents', []))
            return keys

        try:
            keys = await asyncio.to_thread(_list)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 list failed for prefix {prefix!r}: {e}")
            raise StorageError(f"List failed: {e}", key=prefix) from e
        return sorted(keys)


def create_byte_store(config: Optional[Settings] = None) -> ByteStore:
    """Build the byte store selected by STORAGE_BACKEND."""
    config = config or settings
    backend = config.STORAGE_BACKEND

    if backend == "memory":
        logger.warning("Using in-memory customization storage; data is lost on restart")
        return InMemoryByteStore()
    if backend == "local":
        return LocalByteStore(config.LOCAL_STORAGE_PATH)

    store = S3ByteStore(config.S3_BUCKET, config)
    if not store.is_configured():
        raise ConfigurationError("S3 storage not configured. Set S3_BUCKET.", setting="S3_BUCKET")
    return store
