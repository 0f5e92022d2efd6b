"""
gemini_files.py — REST client for the Gemini File API.

Media analysis cannot inline a 100 MB video, so the file goes through the
resumable-upload endpoint first and is referenced by URI afterwards:

  POST  /upload/v1beta/files        start a resumable session (returns upload URL)
  PUT   <upload url>                send the bytes, finalize
  GET   /v1beta/files/<id>          processing state (PROCESSING / ACTIVE / FAILED)
  DELETE /v1beta/files/<id>         remove it once we're done

Plain httpx rather than the SDK helpers: the poll loop needs the raw status
code and body to tell "file gone" (404) apart from a transient non-JSON
reply. The loop itself lives in fact_check_analyzer.py.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from vidfact.core.config import settings
from vidfact.core.errors import BackendError

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 1024 * 1024


async def _read_chunks(path: Path, chunk_size: int = UPLOAD_CHUNK_SIZE):
    with path.open("rb") as fh:
        while True:
            chunk = await asyncio.to_thread(fh.read, chunk_size)
            if not chunk:
                break
            yield chunk


@dataclass
class UploadedFile:
    name: str         # "files/abc123" — used for status + delete
    uri: str          # referenced from generateContent
    mime_type: str
    state: str = "PROCESSING"


class GeminiFileService:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.base_url = (base_url or settings.gemini_api_base).rstrip("/")
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=self._transport,
            params={"key": self.api_key},
        )

    async def upload(self, path: Path, mime_type: str, display_name: str) -> UploadedFile:
        """Resumable upload of *path*; raises BackendError on any failure."""
        try:
            size = (await asyncio.to_thread(path.stat)).st_size
            logger.info(
                "Uploading %s to Gemini (%.2f MB, %s)", display_name, size / 1024 / 1024, mime_type
            )
            async with self._client(settings.upload_timeout) as client:
                start = await client.post(
                    "/upload/v1beta/files",
                    json={"file": {"display_name": display_name}},
                    headers={
                        "X-Goog-Upload-Protocol": "resumable",
                        "X-Goog-Upload-Command": "start",
                        "X-Goog-Upload-Header-Content-Length": str(size),
                        "X-Goog-Upload-Header-Content-Type": mime_type,
                    },
                )
                start.raise_for_status()
                upload_url = start.headers.get("x-goog-upload-url")
                if not upload_url:
                    raise BackendError("Failed to upload video: no upload URL returned")

                finish = await client.put(
                    upload_url,
                    content=_read_chunks(path),
                    headers={
                        "Content-Type": mime_type,
                        "Content-Length": str(size),
                        "X-Goog-Upload-Command": "upload, finalize",
                        "X-Goog-Upload-Offset": "0",
                    },
                )
                finish.raise_for_status()
                payload = finish.json()
        except httpx.HTTPStatusError as exc:
            logger.error("Gemini upload rejected (%s): %s", exc.response.status_code, exc.response.text[:500])
            raise BackendError("Failed to upload video") from exc
        except (httpx.HTTPError, OSError, ValueError) as exc:
            logger.error("Gemini upload failed: %s", exc)
            raise BackendError("Failed to upload video") from exc

        file_data = payload.get("file") or {}
        if not file_data.get("name") or not file_data.get("uri"):
            logger.error("Gemini upload response missing file handle: %.300s", payload)
            raise BackendError("Failed to upload video")

        uploaded = UploadedFile(
            name=file_data["name"],
            uri=file_data["uri"],
            mime_type=file_data.get("mimeType", mime_type),
            state=file_data.get("state", "PROCESSING"),
        )
        logger.info("Upload complete: %s (state=%s)", uploaded.name, uploaded.state)
        return uploaded

    async def get_status(self, name: str) -> httpx.Response:
        """One status poll. Returns the raw response; transport errors propagate."""
        async with self._client(settings.poll_request_timeout) as client:
            return await client.get(f"/v1beta/{name}", headers={"Accept": "application/json"})

    async def delete(self, name: str) -> bool:
        """Best-effort delete; failures are logged, never raised."""
        try:
            async with self._client(settings.poll_request_timeout) as client:
                resp = await client.delete(f"/v1beta/{name}")
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Failed to delete Gemini file %s: %s", name, exc)
            return False
        logger.info("Deleted Gemini file: %s", name)
        return True
