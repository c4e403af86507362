from __future__ import annotations
import io
from functools import lru_cache
from minio import Minio
from minio.error import S3Error
from geoquest.config import settings

def _parse_endpoint(ep: str) -> tuple[str, bool]:
    # Return (host:port, secure)
    secure = ep.startswith("https://")
    host = ep.replace("http://", "").replace("https://", "")
    return host, secure

@lru_cache(maxsize=1)
def _client() -> Minio:
    host, secure = _parse_endpoint(settings.s3_endpoint)
    client = Minio(host, access_key=settings.s3_access_key, secret_key=settings.s3_secret_key, secure=secure)
    try:
        if not client.bucket_exists(settings.s3_bucket_uploads):
            client.make_bucket(settings.s3_bucket_uploads)
    except S3Error:
        # In dev, bucket creation may race; it's fine if it already exists
        pass
    return client

def put_bytes(key: str, data: bytes, content_type: str) -> None:
    _client().put_object(
        settings.s3_bucket_uploads, key, io.BytesIO(data), length=len(data), content_type=content_type
    )

def delete_object(key: str) -> None:
    """Remove an object; a key that is already gone counts as deleted."""
    try:
        _client().remove_object(settings.s3_bucket_uploads, key)
    except S3Error as e:
        if e.code != "NoSuchKey":
            raise
