"""
Blob Store - Key-addressed access to the shared object store.
Wraps the blocking S3 client so the orchestration core can await it.
"""

import asyncio
import logging
from typing import List, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import StorageError
from ..executor import run_blocking

logger = logging.getLogger(__name__)

# Error codes S3 returns for an object that is not (yet) visible
MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound", "403", "AccessDenied"}


class BlobStore(Protocol):
    """Object store operations consumed by the orchestration core."""

    async def head(self, key: str) -> bool:
        ...

    async def list(self, prefix: str) -> List[str]:
        ...

    async def presigned_url(self, key: str, expires_in: int) -> str:
        ...

    async def presigned_upload_url(self, key: str, content_type: Optional[str],
                                   expires_in: int) -> str:
        ...


class S3BlobStore:
    """
    S3-backed blob store.

    Every call runs in the default executor and is bounded by `timeout`
    on top of the botocore connect/read timeouts.
    """

    def __init__(self, bucket_name: str, region_name: Optional[str] = None,
                 timeout: float = 10.0, client=None):
        self.bucket_name = bucket_name
        self.timeout = timeout
        self.s3_client = client or boto3.client(
            "s3",
            region_name=region_name,
            config=Config(
                signature_version="s3v4",
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"max_attempts": 2, "mode": "standard"},
            ),
        )
        logger.info(f"S3BlobStore initialized with bucket: {self.bucket_name}")

    async def head(self, key: str) -> bool:
        """
        Check whether an object is visible.

        Args:
            key: Object key

        Returns:
            True if the object exists, False if the store reports it missing
        """
        return await self._run(self._head_sync, key)

    async def list(self, prefix: str) -> List[str]:
        """
        List every key under a prefix.

        Args:
            prefix: Key prefix

        Returns:
            Keys in the order the store returned them
        """
        return await self._run(self._list_sync, prefix)

    async def presigned_url(self, key: str, expires_in: int) -> str:
        return await self._run(
            self.s3_client.generate_presigned_url,
            "get_object",
            Params={"Bucket": self.bucket_name, "Key": key},
            ExpiresIn=expires_in,
        )

    async def presigned_upload_url(self, key: str, content_type: Optional[str],
                                   expires_in: int) -> str:
        params = {"Bucket": self.bucket_name, "Key": key}
        if content_type:
            params["ContentType"] = content_type
        return await self._run(
            self.s3_client.generate_presigned_url,
            "put_object",
            Params=params,
            ExpiresIn=expires_in,
            HttpMethod="PUT",
        )

    def _head_sync(self, key: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
            return True
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code"))
            if code in MISSING_OBJECT_CODES:
                logger.debug(f"Object {key} not visible ({code})")
                return False
            raise

    def _list_sync(self, prefix: str) -> List[str]:
        keys = []
        paginator = self.s3_client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
            for item in page.get("Contents", []):
                keys.append(item["Key"])
        return keys

    async def _run(self, func, *args, **kwargs):
        try:
            return await run_blocking(func, *args, timeout=self.timeout, **kwargs)
        except asyncio.TimeoutError as e:
            raise StorageError(f"Object store request timed out after {self.timeout}s") from e
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Object store request failed: {str(e)}") from e
