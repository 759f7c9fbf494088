"""
Blob Storage Service
Key/prefix addressed byte storage backed by S3 or a local directory
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from wafwatch.utils.helpers import hourly_prefix
from wafwatch.utils.logger import get_logger


@dataclass
class BlobListing:
    keys: List[str] = field(default_factory=list)
    prefixes: List[str] = field(default_factory=list)


class BlobStore(Protocol):
    def list(self, prefix: str, delimiter: Optional[str] = None) -> BlobListing:
        ...

    def get(self, key: str) -> Optional[bytes]:
        ...

    def put(self, key: str, data: bytes) -> bool:
        ...


class S3BlobStore:
    def __init__(self, bucket: str, region: str = "us-east-1", client=None, logger: Optional[logging.Logger] = None):
        self.bucket = bucket
        self.logger = logger or get_logger("s3")
        self.client = client or boto3.client(
            "s3",
            region_name=region,
            config=Config(retries={"max_attempts": 5, "mode": "adaptive"}),
        )

    def list(self, prefix: str, delimiter: Optional[str] = None) -> BlobListing:
        listing = BlobListing()
        params = {"Bucket": self.bucket, "Prefix": prefix}
        if delimiter:
            params["Delimiter"] = delimiter

        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(**params):
                listing.keys.extend(obj["Key"] for obj in page.get("Contents", []) if not obj["Key"].endswith("/"))
                listing.prefixes.extend(item["Prefix"] for item in page.get("CommonPrefixes", []))
        except (BotoCoreError, ClientError) as e:
            self.logger.error(f"Error listing s3://{self.bucket}/{prefix}: {e}")
            return BlobListing()

        self.logger.debug(f"Listed s3://{self.bucket}/{prefix}: {len(listing.keys)} objects, {len(listing.prefixes)} prefixes")
        return listing

    def get(self, key: str) -> Optional[bytes]:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            self.logger.warning(f"Error downloading s3://{self.bucket}/{key}: {e}")
            return None

    def put(self, key: str, data: bytes) -> bool:
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data)
            self.logger.info(f"Uploaded s3://{self.bucket}/{key}")
            return True
        except (BotoCoreError, ClientError) as e:
            self.logger.error(f"Error uploading s3://{self.bucket}/{key}: {e}")
            return False


class LocalBlobStore:
    """Directory-backed store, keys are relative paths."""

    def __init__(self, root, logger: Optional[logging.Logger] = None):
        self.root = Path(root)
        self.logger = logger or get_logger("local_store")

    def _path(self, key: str) -> Path:
        return self.root / key

    def list(self, prefix: str, delimiter: Optional[str] = None) -> BlobListing:
        listing = BlobListing()
        if not self.root.exists():
            return listing

        keys = sorted(
            path.relative_to(self.root).as_posix()
            for path in self.root.rglob("*")
            if path.is_file()
        )
        prefixes = set()
        for key in keys:
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix):]
            if delimiter and delimiter in rest:
                prefixes.add(prefix + rest.split(delimiter)[0] + delimiter)
            else:
                listing.keys.append(key)
        listing.prefixes = sorted(prefixes)
        return listing

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self._path(key).read_bytes()
        except OSError as e:
            self.logger.warning(f"Error reading {key}: {e}")
            return None

    def put(self, key: str, data: bytes) -> bool:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(f"{path.name}.tmp")
            tmp_path.write_bytes(data)
            tmp_path.replace(path)
            return True
        except OSError as e:
            self.logger.error(f"Error writing {key}: {e}")
            return False


def log_objects_prefix(account_id: str, folder_prefix: str, moment: datetime) -> str:
    """``AWSLogs/<account>/WAFLogs/.../2023/03/22/16/``"""
    return f"AWSLogs/{account_id}/{folder_prefix}{hourly_prefix(moment)}"


def previous_hour_log_prefix(account_id: str, folder_prefix: str, now: datetime) -> str:
    return log_objects_prefix(account_id, folder_prefix, now - timedelta(hours=1))


def report_prefix(upload_folder: str, moment: datetime, trailing_delimiter: bool = False) -> str:
    return f"{upload_folder}/{hourly_prefix(moment, trailing_delimiter)}"


def fetch_log_objects(store: BlobStore, prefix: str, logger: Optional[logging.Logger] = None) -> List[bytes]:
    """Log objects sit one folder below the hourly prefix."""
    logger = logger or get_logger("s3")
    listing = store.list(prefix, delimiter="/")
    folders = listing.prefixes or [prefix]
    objects = []

    for folder in folders:
        for key in store.list(folder).keys:
            data = store.get(key)
            if data is None:
                continue
            logger.debug(f"Downloaded log object {key}")
            objects.append(data)

    logger.info(f"Retrieved {len(objects)} log objects under {prefix}")
    return objects
