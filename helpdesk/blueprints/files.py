"""Files blueprint — /api/files/*

Attachment upload for the public ticket form. The browser asks for an
upload URL, sends the bytes there, then resolves the storage key into the
URL it submits as attachment_url.

Route Map:
  POST /api/files/upload-url          — signed upload URL + storage key
  POST /api/files/file-url            — public URL for a storage key
  PUT  /api/files/local/<storage_key> — local-disk upload target (no Supabase)
"""

from flask import Blueprint, jsonify, request

from helpdesk.extensions import limiter
from helpdesk.services import storage_service
from helpdesk.utils import request_data

files_bp = Blueprint("files", __name__, url_prefix="/api/files")


@files_bp.route("/upload-url", methods=["POST"])
@limiter.limit("20 per hour")
def upload_url():
    result = storage_service.create_upload_url(request_data().get("filename"))
    return jsonify(ok=True, **result)


@files_bp.route("/file-url", methods=["POST"])
def file_url():
    url = storage_service.get_file_url(request_data().get("storage_key"))
    return jsonify(ok=True, url=url)


@files_bp.route("/local/<path:storage_key>", methods=["PUT"])
@limiter.limit("20 per hour")
def local_upload(storage_key):
    storage_service.save_local_upload(storage_key, request.get_data())
    return jsonify(ok=True, storage_key=storage_key)
