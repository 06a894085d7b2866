"""
MinIO object storage for uploaded benefits documents.
Objects live under documents/<company_id>/<document_id>/<filename>; calls are blocking (wrap in asyncio.to_thread).
"""
import os
from functools import lru_cache
from io import BytesIO

from minio import Minio


@lru_cache(maxsize=1)
def _client() -> Minio:
    return Minio(
        os.getenv("MINIO_ENDPOINT", "localhost:9000").strip(),
        access_key=os.getenv("MINIO_ACCESS_KEY", "minioadmin"),
        secret_key=os.getenv("MINIO_SECRET_KEY", "minioadmin"),
        secure=os.getenv("MINIO_SECURE", "false").lower() in ("true", "1", "yes"),
    )


def bucket_name() -> str:
    return os.getenv("MINIO_BUCKET", "benefits-documents")


def document_key(company_id: str, document_id: str, filename: str) -> str:
    return f"documents/{company_id}/{document_id}/{filename}"


def ensure_bucket() -> str:
    client = _client()
    bucket = bucket_name()
    if not client.bucket_exists(bucket):
        client.make_bucket(bucket)
    return bucket


def ping() -> bool:
    """True when the bucket is reachable; creates it on first use."""
    ensure_bucket()
    return True


def put_bytes(object_name: str, data: bytes, content_type: str = "application/octet-stream") -> str:
    _client().put_object(ensure_bucket(), object_name, BytesIO(data), len(data), content_type=content_type)
    return object_name


def read_bytes(object_name: str) -> bytes:
    response = _client().get_object(bucket_name(), object_name)
    try:
        return response.read()
    finally:
        response.close()
        response.release_conn()


def remove(object_name: str) -> None:
    _client().remove_object(bucket_name(), object_name)
