"""Firmware deployment package upload, listing and download."""

import hashlib
import logging
import os
import re
import time
from typing import TYPE_CHECKING, Any, Dict, Iterator, Optional, Tuple

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.concurrency import run_in_threadpool

from ..store import DESCENDING
from ..utils import iso_timestamp

if TYPE_CHECKING:
    from ..config import DeploymentConfig
    from ..mqtt import TelemetryBridge
    from ..store import DocumentStore

CHUNK_SIZE = 1024 * 1024
DOWNLOAD_PREFIX = "/api/deployment-download"
DEPLOYMENT_ID_RE = re.compile(r"^[0-9a-f]{32}$")
RANGE_RE = re.compile(r"^bytes=(\d+)-(\d*)$")

logger = logging.getLogger(__name__)


class UploadTooLarge(Exception):
    """Raised when an upload passes the configured size limit."""


def download_url(deployment_id: str) -> str:
    return f"{DOWNLOAD_PREFIX}/{deployment_id}"


def summarize(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Public view of a deployment document."""
    return {
        "id": doc["_id"],
        "version": doc["version"],
        "filename": doc["originalName"],
        "size": doc["size"],
        "sha256": doc["sha256"],
        "uploadedBy": doc.get("uploadedBy"),
        "uploadedAt": doc["uploadedAt"],
    }


def parse_range(header: str, file_size: int) -> Optional[Tuple[int, int]]:
    """Parse a single ``bytes=start-end`` range.

    Returns:
        Inclusive (start, end), or None when the range cannot be satisfied
    """
    match = RANGE_RE.match(header.strip())
    if not match:
        return None
    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else file_size - 1
    end = min(end, file_size - 1)
    if start >= file_size or end < start:
        return None
    return start, end


def iter_file(path: str, start: int, end: int) -> Iterator[bytes]:
    remaining = end - start + 1
    with open(path, "rb") as f:
        f.seek(start)
        while remaining > 0:
            chunk = f.read(min(CHUNK_SIZE, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def create_deployments_router(
    store: "DocumentStore", bridge: "TelemetryBridge", config: "DeploymentConfig"
) -> APIRouter:
    """Create the /api/deployments router."""
    router = APIRouter(prefix="/api/deployments", tags=["deployments"])
    deployments = store.collection("deployments")
    os.makedirs(config.storage_path, exist_ok=True)

    @router.post("/upload")
    async def upload(
        request: Request, file: UploadFile = File(...), version: Optional[str] = Form(None)
    ):
        original_name = os.path.basename(file.filename or "") or "package.zip"
        saved_name = f"deployment-{int(time.time() * 1000)}-{original_name}"
        path = os.path.join(config.storage_path, saved_name)

        digest = hashlib.sha256()
        size = 0
        try:
            with open(path, "wb") as out:
                while True:
                    chunk = await file.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > config.max_bytes:
                        raise UploadTooLarge(f"upload exceeds {config.max_bytes} bytes")
                    digest.update(chunk)
                    await run_in_threadpool(out.write, chunk)
        except UploadTooLarge as e:
            os.remove(path)
            logger.warning(f"Rejected deployment upload '{original_name}': {e}")
            return _error("File too large", 413)
        except OSError as e:
            logger.error(f"Failed to write deployment file {path}: {e}")
            if os.path.exists(path):
                os.remove(path)
            return _error("Failed to write file", 500)

        user = getattr(request.state, "user", None) or {}
        doc = {
            "version": version or "unknown",
            "filename": saved_name,
            "originalName": original_name,
            "size": size,
            "sha256": digest.hexdigest(),
            "uploadedBy": user.get("username", "unknown"),
            "uploadedAt": iso_timestamp(),
        }
        doc["_id"] = await deployments.insert_one(doc)
        logger.info(f"Stored deployment {doc['_id']} ({original_name}, {size} bytes)")

        notice = {
            "id": doc["_id"],
            "version": doc["version"],
            "filename": original_name,
            "size": size,
            "sha256": doc["sha256"],
            "downloadUrl": download_url(doc["_id"]),
            "timestamp": doc["uploadedAt"],
        }
        if not bridge.publish_deployment_available(notice):
            logger.warning(f"Deployment {doc['_id']} stored but not announced over MQTT")

        response = summarize(doc)
        response["downloadUrl"] = notice["downloadUrl"]
        return response

    @router.get("")
    async def list_deployments():
        docs = await deployments.find(sort=[("uploadedAt", DESCENDING)])
        return [summarize(doc) for doc in docs]

    @router.delete("/{deployment_id}")
    async def delete_deployment(deployment_id: str):
        doc = await deployments.find_one({"_id": deployment_id})
        if doc is None:
            return _error("Deployment not found", 404)

        try:
            os.remove(os.path.join(config.storage_path, doc["filename"]))
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Error deleting deployment file: {e}")

        await deployments.delete_one({"_id": deployment_id})
        logger.info(f"Deleted deployment {deployment_id}")
        return {"message": "Deployment deleted"}

    return router


def create_download_router(store: "DocumentStore", config: "DeploymentConfig") -> APIRouter:
    """Create the /api/deployment-download router used by devices."""
    router = APIRouter(prefix=DOWNLOAD_PREFIX, tags=["deployments"])
    deployments = store.collection("deployments")

    # Declared before /{deployment_id} so "latest" is not taken as an ID
    @router.get("/latest/info")
    async def latest_info():
        latest = await deployments.find_one(sort=[("uploadedAt", DESCENDING)])
        if latest is None:
            return _error("No deployments available", 404)
        info = summarize(latest)
        info.pop("uploadedBy")
        info["downloadUrl"] = download_url(latest["_id"])
        return info

    @router.get("/{deployment_id}")
    async def download(deployment_id: str, request: Request):
        if not DEPLOYMENT_ID_RE.match(deployment_id):
            return _error("Invalid deployment ID", 400)

        doc = await deployments.find_one({"_id": deployment_id})
        if doc is None:
            return _error("Deployment not found", 404)

        path = os.path.join(config.storage_path, doc["filename"])
        if not os.path.isfile(path):
            return _error("File not found on disk", 404)

        file_size = os.path.getsize(path)
        headers = {
            "Accept-Ranges": "bytes",
            "Content-Disposition": f'attachment; filename="{doc["originalName"]}"',
            "ETag": f'"{doc["sha256"]}"',
            "X-Checksum-SHA256": doc["sha256"],
        }

        range_header = request.headers.get("range")
        if not range_header:
            headers["Content-Length"] = str(file_size)
            return StreamingResponse(
                iter_file(path, 0, file_size - 1), media_type="application/zip", headers=headers
            )

        byte_range = parse_range(range_header, file_size)
        if byte_range is None:
            return Response(status_code=416, headers={"Content-Range": f"bytes */{file_size}"})

        start, end = byte_range
        headers["Content-Range"] = f"bytes {start}-{end}/{file_size}"
        headers["Content-Length"] = str(end - start + 1)
        return StreamingResponse(
            iter_file(path, start, end), status_code=206, media_type="application/zip", headers=headers
        )

    return router
