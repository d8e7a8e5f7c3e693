"""
Object storage for card images and markdown blobs.

Images and markdown live in separate buckets. The local backend maps a
bucket to a directory under STORAGE_FOLDER; the s3 backend talks to MinIO
or any S3-compatible endpoint through boto3.
"""
import logging
import mimetypes
import os
from pathlib import Path
from urllib.parse import urlparse
import boto3
from botocore.exceptions import BotoCoreError, ClientError
from umesao.errors import ConfigurationError, ExternalServiceError, NotFoundError

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {"404", "NoSuchKey", "NotFound"}
_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}


def markdown_key(card_id, version):
    return f"{card_id}_{version}.md"


def guess_content_type(key):
    if key.endswith(".md"):
        return "text/markdown"
    return mimetypes.guess_type(key)[0] or "application/octet-stream"


class LocalObjectStore:
    """Buckets as directories on the local filesystem."""

    def __init__(self, root):
        self.root = os.path.abspath(root)

    def _path(self, bucket, key):
        bucket_dir = os.path.join(self.root, bucket)
        path = os.path.abspath(os.path.join(bucket_dir, key))
        if os.path.dirname(path) != bucket_dir:
            raise ValueError(f"Invalid object key: {key}")
        return path

    def put(self, bucket, key, data, content_type=None):
        path = self._path(bucket, key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)

    def get(self, bucket, key):
        path = self._path(bucket, key)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError as e:
            raise NotFoundError(f"object {bucket}/{key} not found") from e

    def delete(self, bucket, key):
        path = self._path(bucket, key)
        try:
            os.remove(path)
        except FileNotFoundError as e:
            raise NotFoundError(f"object {bucket}/{key} not found") from e

    def url(self, bucket, key):
        return Path(self._path(bucket, key)).as_uri()


class S3ObjectStore:
    """S3-compatible storage (MinIO in the usual setup)."""

    def __init__(self, endpoint, access_key, secret_key, secure=True, region=None):
        if not endpoint or not access_key or not secret_key:
            raise ConfigurationError(
                "missing S3 connection settings (S3_ENDPOINT, S3_ACCESS_KEY, S3_SECRET_KEY)"
            )
        self.endpoint = self._resolve_endpoint(endpoint)
        self.secure = secure
        self.access_key = access_key
        self.secret_key = secret_key
        self.region = region
        self._client = None
        self._known_buckets = set()

    @staticmethod
    def _resolve_endpoint(endpoint):
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            return urlparse(endpoint).netloc
        return endpoint

    @property
    def protocol(self):
        return "https" if self.secure else "http"

    def _get_client(self):
        if self._client is not None:
            return self._client
        self._client = boto3.client(
            "s3",
            endpoint_url=f"{self.protocol}://{self.endpoint}",
            aws_access_key_id=self.access_key,
            aws_secret_access_key=self.secret_key,
            region_name=self.region,
            use_ssl=self.secure,
        )
        return self._client

    def _ensure_bucket(self, bucket):
        if bucket in self._known_buckets:
            return
        client = self._get_client()
        try:
            client.head_bucket(Bucket=bucket)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code not in _MISSING_BUCKET_CODES:
                raise ExternalServiceError(f"error checking if bucket {bucket} exists: {e}") from e
            try:
                client.create_bucket(Bucket=bucket)
            except ClientError as e2:
                code2 = str(e2.response.get("Error", {}).get("Code", ""))
                if code2 not in {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}:
                    raise ExternalServiceError(f"error creating bucket {bucket}: {e2}") from e2
            logger.info(f"Created bucket {bucket}")
        self._known_buckets.add(bucket)

    def put(self, bucket, key, data, content_type=None):
        self._ensure_bucket(bucket)
        try:
            self._get_client().put_object(
                Bucket=bucket,
                Key=key,
                Body=data,
                ContentType=content_type or guess_content_type(key),
            )
        except (ClientError, BotoCoreError) as e:
            raise ExternalServiceError(f"error uploading {bucket}/{key}: {e}") from e

    def get(self, bucket, key):
        try:
            obj = self._get_client().get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_KEY_CODES | _MISSING_BUCKET_CODES:
                raise NotFoundError(f"object {bucket}/{key} not found") from e
            raise ExternalServiceError(f"error downloading {bucket}/{key}: {e}") from e
        except BotoCoreError as e:
            raise ExternalServiceError(f"error downloading {bucket}/{key}: {e}") from e
        body = obj["Body"]
        try:
            return body.read()
        finally:
            body.close()

    def delete(self, bucket, key):
        try:
            self._get_client().delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise ExternalServiceError(f"error deleting {bucket}/{key}: {e}") from e

    def url(self, bucket, key):
        return f"{self.protocol}://{self.endpoint}/{bucket}/{key}"


def create_object_store(config):
    """Create the object store selected by STORAGE_BACKEND."""
    backend = (config.get("STORAGE_BACKEND") or "local").strip().lower()

    if backend == "local":
        return LocalObjectStore(config["STORAGE_FOLDER"])

    elif backend in ("s3", "minio"):
        return S3ObjectStore(
            endpoint=config.get("S3_ENDPOINT", ""),
            access_key=config.get("S3_ACCESS_KEY", ""),
            secret_key=config.get("S3_SECRET_KEY", ""),
            secure=config.get("S3_SECURE", True),
        )

    else:
        raise ConfigurationError(f"Unknown storage backend: {backend}. Use 'local' or 's3'")
