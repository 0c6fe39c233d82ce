"""Storage service — ticket attachments in Supabase Storage (prod) or local disk (dev).

Supabase bucket: ticket-attachments (must be created in Supabase dashboard).
Local fallback: instance/uploads/ directory, written through PUT /api/files/local/<key>.

Attachments are uploaded by the browser before the ticket is submitted:
1. create_upload_url(filename) -> signed URL + opaque storage key
2. client PUTs the file to the signed URL
3. get_file_url(storage_key) -> URL stored on the ticket as attachment_url
"""

import logging
import os
import re
import uuid

import requests
from flask import current_app

from helpdesk.exceptions import PortalError, ValidationError
from helpdesk.utils import utcnow

logger = logging.getLogger(__name__)

# Max file size: 10 MB
MAX_FILE_SIZE = 10 * 1024 * 1024

ALLOWED_EXTENSIONS = {
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic", ".pdf", ".doc", ".docx",
}

# YYYY/MM/<32 hex><ext>
STORAGE_KEY_RE = re.compile(r"^\d{4}/\d{2}/[0-9a-f]{32}\.[a-z0-9]+$")


def _get_supabase_config():
    """Return Supabase storage config if available, else None."""
    url = current_app.config.get("SUPABASE_URL")
    key = current_app.config.get("SUPABASE_SERVICE_KEY")
    bucket = current_app.config.get("SUPABASE_STORAGE_BUCKET", "ticket-attachments")

    if url and key:
        return {"url": url.rstrip("/"), "key": key, "bucket": bucket}
    return None


def _extension(filename):
    ext = os.path.splitext(filename or "")[1].lower()
    if not filename or ext not in ALLOWED_EXTENSIONS:
        raise ValidationError(
            f"File type '{ext or filename}' is not allowed. Accepted: images, PDFs and Word documents."
        )
    return ext


def validate_storage_key(storage_key):
    if not storage_key or not STORAGE_KEY_RE.match(storage_key):
        raise ValidationError("Invalid storage key")
    return storage_key


def new_storage_key(filename, now=None):
    """Opaque key for a new attachment; the original name is not kept."""
    now = now or utcnow()
    return f"{now:%Y/%m}/{uuid.uuid4().hex}{_extension(filename)}"


def create_upload_url(filename):
    """Issue a one-shot upload URL for an attachment.

    Returns dict with:
        upload_url: where the client PUTs the file bytes
        storage_key: opaque key to pass to get_file_url afterwards
        max_size: byte limit the client should enforce
    """
    storage_key = new_storage_key(filename)

    supabase = _get_supabase_config()
    if supabase:
        upload_url = _signed_upload_url(supabase, storage_key)
    else:
        upload_url = f"{current_app.config['APP_BASE_URL']}/api/files/local/{storage_key}"

    logger.info(f"Issued upload URL for {storage_key}")
    return {
        "upload_url": upload_url,
        "storage_key": storage_key,
        "max_size": MAX_FILE_SIZE,
    }


def _signed_upload_url(config, path):
    """Ask Supabase for a signed upload URL. Returns an absolute URL."""
    url = f"{config['url']}/storage/v1/object/upload/sign/{config['bucket']}/{path}"
    headers = {"Authorization": f"Bearer {config['key']}"}

    try:
        resp = requests.post(url, headers=headers, json={}, timeout=15)
        resp.raise_for_status()
        signed = resp.json()["url"]
    except (requests.RequestException, KeyError, ValueError) as e:
        logger.error(f"Supabase signed upload URL failed for {path}: {e}")
        raise PortalError("Could not prepare file upload. Please try again.")

    # Supabase answers with a path relative to /storage/v1
    if signed.startswith("http"):
        return signed
    return f"{config['url']}/storage/v1{signed}"


def get_file_url(storage_key):
    """Public URL for an uploaded attachment."""
    validate_storage_key(storage_key)

    supabase = _get_supabase_config()
    if supabase:
        return f"{supabase['url']}/storage/v1/object/public/{supabase['bucket']}/{storage_key}"
    return f"{current_app.config['APP_BASE_URL']}/uploads/{storage_key}"


def local_upload_path(storage_key):
    return os.path.join(current_app.instance_path, "uploads", *storage_key.split("/"))


def save_local_upload(storage_key, data):
    """Write an attachment to local disk (dev fallback for the signed URL)."""
    validate_storage_key(storage_key)
    if _get_supabase_config():
        raise PortalError("Local uploads are disabled", status_code=404)
    if not data:
        raise ValidationError("File is empty.")
    if len(data) > MAX_FILE_SIZE:
        raise ValidationError(
            f"File is too large ({len(data) / (1024*1024):.1f} MB). Maximum is 10 MB."
        )

    filepath = local_upload_path(storage_key)
    os.makedirs(os.path.dirname(filepath), exist_ok=True)
    with open(filepath, "wb") as f:
        f.write(data)

    logger.info(f"Uploaded locally: {filepath}")
    return filepath
