"""File storage API (Supabase Storage buckets)."""

import uuid
from typing import Optional

from ..config import settings
from ..core.client import BackendClient
from ..core.exceptions import DataAccessError, ServiceNotConfiguredError

STORAGE_PREFIX = "/storage/v1/object"


def public_url(client: BackendClient, path: str, bucket: Optional[str] = None) -> str:
    bucket = bucket or settings.supabase_storage_bucket
    return f"{client.base_url}{STORAGE_PREFIX}/public/{bucket}/{path}"


def mime_type_tag(content_type: Optional[str]) -> str:
    """Short type tag shown on attachments: ``image/png`` -> ``png``."""
    if content_type and "/" in content_type:
        subtype = content_type.split("/", 1)[1].strip()
        if subtype:
            return subtype
    return "file"


async def upload_file(
    client: BackendClient,
    file_name: str,
    content: bytes,
    content_type: Optional[str] = None,
    bucket: Optional[str] = None,
) -> str:
    """Upload ``content`` under a random object name and return its public URL.

    Args:
        client (BackendClient): The client instance.
        file_name (str): Original file name; only its extension is kept.
        content (bytes): File body.
        content_type (Optional[str]): MIME type sent to the storage service.
        bucket (Optional[str]): Target bucket, defaults to the configured one.

    Returns:
        str: Public URL of the stored object.
    """
    bucket = bucket or settings.supabase_storage_bucket
    extension = file_name.rsplit(".", 1)[-1] if "." in file_name else "bin"
    object_name = f"{uuid.uuid4().hex}.{extension}"
    try:
        await client.post(
            f"{STORAGE_PREFIX}/{bucket}/{object_name}",
            content=content,
            headers={"Content-Type": content_type or "application/octet-stream"},
        )
    except ServiceNotConfiguredError:
        raise
    except DataAccessError as e:
        raise DataAccessError(f"Upload failed: {e.message}", status_code=e.status_code, details=e.details)
    return public_url(client, object_name, bucket)
