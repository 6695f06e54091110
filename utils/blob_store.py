"""JSON document storage on S3 or a local directory."""

import json
import logging
from pathlib import Path
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


class StorageError(RuntimeError):
    """Raised when the object store cannot be read or written."""


class S3JsonStore:
    """Whole-object JSON reads and writes against one S3 bucket."""

    def __init__(self, bucket: str, region: str = "us-east-1", client: Any = None):
        if not bucket:
            raise ValueError("S3 bucket name is required")
        self.bucket = bucket
        self.client = client or boto3.client("s3", region_name=region)

    def read_json(self, key: str) -> Any:
        """Return the decoded document at `key`, or None when it does not exist."""
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code in _MISSING_KEY_CODES:
                return None
            if error_code == "NoSuchBucket":
                raise StorageError(f"Bucket {self.bucket} not found") from e
            raise StorageError(f"Error reading s3://{self.bucket}/{key}: {error_code}") from e
        except BotoCoreError as e:
            raise StorageError(f"Error reading s3://{self.bucket}/{key}: {e}") from e

        try:
            body = response["Body"].read().decode("utf-8")
        except UnicodeDecodeError as e:
            raise StorageError(f"Invalid UTF-8 in s3://{self.bucket}/{key}: {e}") from e
        if not body.strip():
            return None
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise StorageError(f"Invalid JSON in s3://{self.bucket}/{key}: {e}") from e

    def write_json(self, key: str, value: Any) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=json.dumps(value, indent=2).encode("utf-8"),
                ContentType="application/json",
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Error writing s3://{self.bucket}/{key}: {e}") from e


class LocalJsonStore:
    """Same interface as S3JsonStore, backed by files under `root`."""

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser()

    def _path(self, key: str) -> Path:
        return self.root / key

    def read_json(self, key: str) -> Any:
        p = self._path(key)
        if not p.exists():
            return None
        try:
            text = p.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Error reading {p}: {e}") from e
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise StorageError(f"Invalid JSON in {p}: {e}") from e

    def write_json(self, key: str, value: Any) -> None:
        p = self._path(key)
        tmp = p.with_suffix(p.suffix + ".tmp")
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(value, indent=2), encoding="utf-8")
            tmp.replace(p)
        except OSError as e:
            raise StorageError(f"Error writing {p}: {e}") from e
