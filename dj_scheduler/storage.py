from __future__ import annotations
import abc
import logging
import os
import tempfile
from pathlib import Path
from urllib.parse import urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from itsdangerous import URLSafeTimedSerializer

from .config import Settings
from .errors import ConfigurationError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "audio/mpeg"
UPLOAD_TOKEN_SALT = "track-upload"
_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


def _strip_trailing_slash(value: str) -> str:
    return value.rstrip("/")


class ObjectStorage(abc.ABC):
    """Blob store holding uploaded tracks and the events document."""

    @abc.abstractmethod
    def public_base_urls(self) -> list[str]:
        """Base URLs objects may be addressed by; the first one is used for new objects."""

    @abc.abstractmethod
    def upload_blob(self, key: str, data: bytes, content_type: str | None = None) -> str:
        """Store ``data`` under ``key`` and return its public URL."""

    @abc.abstractmethod
    def read_text_object(self, key: str) -> str | None:
        """Return the object's text, or None when it does not exist."""

    @abc.abstractmethod
    def write_text_object(self, key: str, text: str) -> None:
        ...

    @abc.abstractmethod
    def delete_object(self, key: str) -> None:
        ...

    @abc.abstractmethod
    def presign_upload(self, key: str, content_type: str, expires_in: int) -> str:
        """Time-limited URL a client can PUT the object body to."""

    def public_url(self, key: str) -> str:
        return f"{self.public_base_urls()[0]}/{key.lstrip('/')}"

    def key_from_url(self, url: str) -> str | None:
        trimmed = url.strip()
        if not trimmed:
            return None
        for base in self.public_base_urls():
            if trimmed.startswith(base):
                remainder = trimmed[len(base):].lstrip("/")
                if remainder:
                    return remainder
        path = urlparse(trimmed).path.lstrip("/")
        return path or None

    def delete_objects_by_url(self, urls: list[str]) -> None:
        keys = [k for k in (self.key_from_url(u) for u in urls) if k]
        for key in keys:
            self.delete_object(key)


class R2Storage(ObjectStorage):
    """Cloudflare R2 (S3-compatible API) through boto3."""

    def __init__(self, client, bucket: str, public_base_url: str = ""):
        self.client = client
        self.bucket = bucket
        self._bucket_domain = f"https://{bucket}.r2.dev"
        self._public_base = _strip_trailing_slash(public_base_url or self._bucket_domain)

    @classmethod
    def from_settings(cls, settings: Settings) -> "R2Storage":
        client = boto3.client(
            "s3",
            region_name="auto",
            endpoint_url=settings.require("r2_endpoint"),
            aws_access_key_id=settings.require("r2_access_key"),
            aws_secret_access_key=settings.require("r2_secret_key"),
            config=Config(s3={"addressing_style": "path"}),
        )
        return cls(client, settings.require("r2_bucket"), settings.r2_public_base_url)

    def public_base_urls(self) -> list[str]:
        return [self._public_base, self._bucket_domain]

    def upload_blob(self, key: str, data: bytes, content_type: str | None = None) -> str:
        key = key.lstrip("/")
        try:
            self.client.put_object(
                Bucket=self.bucket, Key=key, Body=data, ContentType=content_type or DEFAULT_CONTENT_TYPE
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"put_object failed for {key}: {e}") from e
        return self.public_url(key)

    def read_text_object(self, key: str) -> str | None:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_KEY_CODES:
                return None
            raise StorageError(f"get_object failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"get_object failed for {key}: {e}") from e
        body = response.get("Body")
        if body is None:
            return None
        return body.read().decode("utf-8")

    def write_text_object(self, key: str, text: str) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket, Key=key, Body=text.encode("utf-8"), ContentType="application/json"
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"put_object failed for {key}: {e}") from e

    def delete_object(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"delete_object failed for {key}: {e}") from e

    def presign_upload(self, key: str, content_type: str, expires_in: int) -> str:
        try:
            return self.client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"presigning failed for {key}: {e}") from e


class LocalStorage(ObjectStorage):
    """Objects as files under ``root``; served by the app under /media."""

    def __init__(self, root: str | Path, base_url: str, secret_key: str):
        self.root = Path(root).resolve()
        self.base_url = _strip_trailing_slash(base_url)
        self.signer = URLSafeTimedSerializer(secret_key, salt=UPLOAD_TOKEN_SALT)
        self.root.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalStorage":
        return cls(settings.local_storage_dir, settings.base_url, settings.require("secret_key"))

    def public_base_urls(self) -> list[str]:
        return [f"{self.base_url}/media"]

    def _path(self, key: str) -> Path:
        path = (self.root / key.lstrip("/")).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Object key escapes storage root: {key}")
        return path

    def _write(self, key: str, data: bytes) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # temp file + rename: the previous object survives a failed write
            fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp, path)
            except BaseException:
                os.unlink(tmp)
                raise
        except OSError as e:
            raise StorageError(f"writing {key} failed: {e}") from e

    def upload_blob(self, key: str, data: bytes, content_type: str | None = None) -> str:
        self._write(key, data)
        return self.public_url(key)

    def read_text_object(self, key: str) -> str | None:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"reading {key} failed: {e}") from e

    def write_text_object(self, key: str, text: str) -> None:
        self._write(key, text.encode("utf-8"))

    def delete_object(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"deleting {key} failed: {e}") from e

    def presign_upload(self, key: str, content_type: str, expires_in: int) -> str:
        # expires_in is enforced when the token is redeemed (see load_upload_token)
        token = self.signer.dumps({"key": key, "content_type": content_type})
        return f"{self.base_url}/api/uploads/{token}"

    def load_upload_token(self, token: str, max_age: int) -> dict:
        """Raises itsdangerous.SignatureExpired / BadSignature for stale or forged tokens."""
        return self.signer.loads(token, max_age=max_age)


def build_storage(settings: Settings) -> ObjectStorage:
    """Construct the configured backend once, at application startup."""
    if settings.storage_backend == "local":
        storage: ObjectStorage = LocalStorage.from_settings(settings)
    elif settings.storage_backend == "r2":
        storage = R2Storage.from_settings(settings)
    else:
        raise ConfigurationError(f"Unknown storage backend: {settings.storage_backend}")
    logger.info("Using %s object storage", settings.storage_backend)
    return storage
