"""Amazon S3 image hosting for couple photos.

Each submission is stored as two public WebP renditions that share one base
key: ``<prefix><folder>/<uuid>_w2048.webp`` and ``..._thumb-400.webp``.
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Iterable, NamedTuple
from uuid import uuid4

import boto3
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app

LOGGER = logging.getLogger(__name__)
_DEFAULT_CACHE_CONTROL = "public, max-age=31536000, immutable"
_EXTENSION_KEY = "lovewall_s3_client"
_ACL_DISABLED_FLAG = "lovewall_s3_acl_disabled"
_KNOWN_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}
_MISSING_CODES = frozenset({"NoSuchKey", "404"})


class S3Error(RuntimeError):
    """Base exception for S3 helper failures."""


class S3ConfigurationError(S3Error):
    """Raised when required S3 configuration is missing."""


class S3UploadError(S3Error):
    """Raised when uploading bytes to S3 fails."""


class S3DeleteError(S3Error):
    """Raised when deleting an S3 object fails."""


class StoredObject(NamedTuple):
    key: str
    url: str


@dataclass(frozen=True, slots=True)
class BucketSettings:
    name: str
    prefix: str = ""
    region: str | None = None
    endpoint_url: str | None = None
    public_base_url: str = ""
    acl: str | None = "public-read"

    @classmethod
    def from_config(cls, config: Any) -> BucketSettings:
        name = config.get("S3_BUCKET_NAME")
        if not name:
            raise S3ConfigurationError("S3 bucket name is not configured")

        prefix = str(config.get("S3_BUCKET_PREFIX") or "").strip().replace("\\", "/").lstrip("/")
        if prefix and not prefix.endswith("/"):
            prefix = f"{prefix}/"

        acl = config.get("S3_OBJECT_ACL") or None
        use_oac = str(config.get("S3_USE_OAC") or "").strip().lower() in {"1", "true", "yes", "on"}
        if acl is None and not use_oac:
            acl = "public-read"

        return cls(
            name=str(name),
            prefix=prefix,
            region=config.get("AWS_REGION") or None,
            endpoint_url=config.get("S3_ENDPOINT_URL") or None,
            public_base_url=str(config.get("S3_PUBLIC_BASE_URL") or "").strip(),
            acl=acl,
        )

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            base = self.public_base_url.rstrip("/")
            if not base.lower().startswith(("https://", "http://")):
                base = f"https://{base}"
            return f"{base}/{key}"
        region = self.region or boto3.session.Session().region_name
        if region and region != "us-east-1":
            return f"https://{self.name}.s3.{region}.amazonaws.com/{key}"
        return f"https://{self.name}.s3.amazonaws.com/{key}"


def bucket_settings() -> BucketSettings:
    return BucketSettings.from_config(current_app.config)


def upload_bytes(
    payload: bytes,
    *,
    content_type: str,
    folder: str | None = None,
    object_key: str | None = None,
    cache_control: str | None = _DEFAULT_CACHE_CONTROL,
    metadata: dict[str, Any] | None = None,
) -> StoredObject:
    """Upload one rendition and return its key and public URL."""
    if not isinstance(payload, (bytes, bytearray)) or not payload:
        raise ValueError("payload must be non-empty bytes")
    settings = bucket_settings()
    key = object_key.lstrip("/") if object_key else _new_key(settings, folder, content_type)

    params: dict[str, Any] = {
        "Bucket": settings.name,
        "Key": key,
        "Body": bytes(payload),
        "ContentType": content_type,
    }
    if settings.acl and not current_app.extensions.get(_ACL_DISABLED_FLAG, False):
        params["ACL"] = settings.acl
    if cache_control:
        params["CacheControl"] = cache_control
    if metadata:
        params["Metadata"] = {str(k): str(v) for k, v in metadata.items() if v is not None}

    _put_object(_get_client(settings), params)
    LOGGER.debug("Uploaded object to S3 bucket %s at key %s", settings.name, key)
    return StoredObject(key, settings.public_url(key))


def delete_renditions(keys: Iterable[str | None]) -> list[str]:
    """Delete a couple's stored renditions in one request.

    Keys that are already gone count as deleted. Returns the keys sent.
    """
    wanted = sorted({key.lstrip("/") for key in keys if key})
    if not wanted:
        return []
    settings = bucket_settings()
    client = _get_client(settings)
    try:
        response = client.delete_objects(
            Bucket=settings.name,
            Delete={"Objects": [{"Key": key} for key in wanted], "Quiet": True},
        )
    except (BotoCoreError, ClientError) as exc:
        raise S3DeleteError(f"Failed to delete objects {wanted!r}: {exc}") from exc

    failed = [
        error.get("Key")
        for error in response.get("Errors") or []
        if error.get("Code") not in _MISSING_CODES
    ]
    if failed:
        raise S3DeleteError(f"Failed to delete objects {failed!r}")
    LOGGER.debug("Deleted %s object(s) from S3 bucket %s", len(wanted), settings.name)
    return wanted


def build_public_url(key: str) -> str:
    if not key:
        raise ValueError("key must be provided")
    return bucket_settings().public_url(key.lstrip("/"))


def rendition_key(key: str, label: str) -> str:
    """Key of a derived rendition stored next to ``key``.

    ``wedding-photos/abc.webp`` with label ``thumb-400`` becomes
    ``wedding-photos/abc_thumb-400.webp``.
    """
    if not key:
        raise ValueError("key must be provided")
    path = PurePosixPath(key.lstrip("/"))
    return str(path.with_name(f"{path.stem}_{label}{path.suffix}"))


def thumbnail_key(key: str, size: int = 400) -> str:
    return rendition_key(key, f"thumb-{int(size)}")


def optimized_key(key: str, max_width: int = 2048) -> str:
    return rendition_key(key, f"w{int(max_width)}")


def allocate_key(folder: str | None = None, *, content_type: str = "image/webp") -> str:
    """Reserve a fresh base key; renditions are stored beside it."""
    return _new_key(bucket_settings(), folder, content_type)


def _new_key(settings: BucketSettings, folder: str | None, content_type: str) -> str:
    folder_part = (folder or "").strip().strip("/")
    name = f"{uuid4().hex}{_resolve_extension(content_type)}"
    if folder_part:
        name = f"{folder_part}/{name}"
    return f"{settings.prefix}{name}"


def _resolve_extension(content_type: str) -> str:
    known = _KNOWN_EXTENSIONS.get((content_type or "").lower())
    if known:
        return known
    return (mimetypes.guess_extension(content_type or "") or "").lower()


def _put_object(client: BaseClient, params: dict[str, Any]) -> None:
    try:
        client.put_object(**params)
        return
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code != "AccessControlListNotSupported" or "ACL" not in params:
            raise S3UploadError(f"Failed to upload object {params['Key']!r}: {exc}") from exc
    except BotoCoreError as exc:
        raise S3UploadError(f"Failed to upload object {params['Key']!r}: {exc}") from exc

    # Buckets with object ownership enforced reject ACLs; remember that.
    LOGGER.warning("Bucket %s rejects ACLs; retrying upload without ACL", params["Bucket"])
    current_app.extensions[_ACL_DISABLED_FLAG] = True
    retry = {key: value for key, value in params.items() if key != "ACL"}
    try:
        client.put_object(**retry)
    except (BotoCoreError, ClientError) as exc:
        raise S3UploadError(f"Failed to upload object {params['Key']!r}: {exc}") from exc


def _get_client(settings: BucketSettings) -> BaseClient:
    client = current_app.extensions.get(_EXTENSION_KEY)
    if client:
        return client

    client_kwargs: dict[str, Any] = {}
    if settings.region:
        client_kwargs["region_name"] = settings.region
    if settings.endpoint_url:
        client_kwargs["endpoint_url"] = settings.endpoint_url

    client = boto3.client("s3", **client_kwargs)
    current_app.extensions[_EXTENSION_KEY] = client
    return client
