# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""S3/MinIO backend for recorded audio."""
import asyncio
import logging
from pathlib import Path
from typing import Optional

import aioboto3
from botocore.config import Config
from botocore.exceptions import ClientError

from dental_scribe.services.storage.local_storage import guess_content_type

logger = logging.getLogger(__name__)


class S3StorageManager:
    """Stores audio objects in one bucket.

    Keys match the local ``StorageManager`` (``<subfolder>/<filename>``). The bucket
    is checked, and created when absent, on first use rather than at startup.
    """

    def __init__(
        self,
        bucket_name: str,
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        region: str = "us-east-1",
        use_ssl: bool = True,
    ):
        self.bucket_name = bucket_name
        self.endpoint_url = endpoint_url
        self.region = region
        self.use_ssl = use_ssl
        self.session = aioboto3.Session(
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )
        self.config = Config(
            signature_version="s3v4",
            retries={"max_attempts": 3, "mode": "standard"},
            connect_timeout=10,
            read_timeout=60,
        )
        self._bucket_ready = False
        self._bucket_lock = asyncio.Lock()

    def _client(self):
        return self.session.client(
            "s3", endpoint_url=self.endpoint_url, use_ssl=self.use_ssl, config=self.config
        )

    async def _ensure_bucket(self, s3_client):
        async with self._bucket_lock:
            if self._bucket_ready:
                return
            try:
                await s3_client.head_bucket(Bucket=self.bucket_name)
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") not in ("404", "NoSuchBucket"):
                    raise
                params = {"Bucket": self.bucket_name}
                if self.region != "us-east-1":
                    params["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
                await s3_client.create_bucket(**params)
                logger.info(f"Created bucket {self.bucket_name}")
            self._bucket_ready = True

    async def save_file(
        self, file_content: bytes, filename: str, subfolder: Optional[str] = None
    ) -> str:
        """Upload ``file_content`` and return its object key.

        Raises:
            RuntimeError: the upload was refused
        """
        name = Path(filename).name
        key = f"{subfolder}/{name}" if subfolder else name
        try:
            async with self._client() as s3_client:
                await self._ensure_bucket(s3_client)
                await s3_client.put_object(
                    Bucket=self.bucket_name,
                    Key=key,
                    Body=file_content,
                    ContentType=self.content_type(name),
                )
        except ClientError as e:
            raise RuntimeError(f"Upload of {key} to {self.bucket_name} failed: {e}") from e

        logger.info(f"Uploaded {len(file_content)} bytes to s3://{self.bucket_name}/{key}")
        return key

    async def read_file(self, key: str) -> bytes:
        try:
            async with self._client() as s3_client:
                response = await s3_client.get_object(Bucket=self.bucket_name, Key=key)
                async with response["Body"] as body:
                    return await body.read()
        except ClientError as e:
            raise FileNotFoundError(key) from e

    async def delete_file(self, key: str) -> bool:
        """Delete an object. Returns False if it could not be removed."""
        try:
            async with self._client() as s3_client:
                await s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            logger.error(f"Error deleting s3://{self.bucket_name}/{key}: {e}")
            return False
        logger.info(f"Deleted s3://{self.bucket_name}/{key}")
        return True

    async def file_exists(self, key: str) -> bool:
        try:
            async with self._client() as s3_client:
                await s3_client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError:
            return False
        return True

    def content_type(self, key: str) -> str:
        return guess_content_type(key)
