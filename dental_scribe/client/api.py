# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Async HTTP client for the recordings API."""
import asyncio
import base64
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from dental_scribe.exceptions import ApiError, TransportError

logger = logging.getLogger(__name__)


class ScribeApiClient:
    """Thin wrapper over the HTTP surface.

    Network failures raise ``TransportError``; error responses raise ``ApiError``
    carrying the server's status code, error code and message.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        process_timeout: float = 600.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.process_timeout = aiohttp.ClientTimeout(total=process_timeout)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        if params:
            params = {key: value for key, value in params.items() if value is not None}
        try:
            async with aiohttp.ClientSession(timeout=timeout or self.timeout) as session:
                async with session.request(method, url, json=json, params=params) as response:
                    try:
                        body = await response.json(content_type=None)
                    except ValueError:
                        body = None
                    if response.status >= 400:
                        raise self._api_error(response.status, body)
                    return body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"{method} {path} failed: {e!r}")
            raise TransportError(f"Errore di connessione: {method} {path}", detail=repr(e)) from e

    @staticmethod
    def _api_error(status: int, body: Any) -> ApiError:
        if isinstance(body, dict):
            message = body.get("error") or body.get("detail") or f"HTTP {status}"
            detail = body.get("detail") if body.get("error") else None
            return ApiError(
                str(message),
                status_code=status,
                code=body.get("code"),
                detail=detail if isinstance(detail, str) else None,
            )
        return ApiError(f"HTTP {status}", status_code=status)

    # Recordings

    async def create_recording(
        self,
        studio_id: str,
        patient_id: str,
        audio: Optional[bytes],
        duration: int,
        visit_type: Optional[str] = None,
        doctor_name: Optional[str] = None,
        user_id: Optional[str] = None,
        audio_format: str = "wav",
    ) -> Dict[str, Any]:
        """Upload a recording. Returns the created recording."""
        payload = {
            "studio_id": studio_id,
            "patient_id": patient_id,
            "user_id": user_id,
            "visit_type": visit_type,
            "doctor_name": doctor_name,
            "duration": duration,
            "audio_format": audio_format,
            "audio_data": base64.b64encode(audio).decode("ascii") if audio else None,
        }
        body = await self._request("POST", "/api/recordings", json=payload)
        return body["recording"]

    async def list_recordings(
        self, studio_id: str, patient_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        body = await self._request(
            "GET", "/api/recordings", params={"studio_id": studio_id, "patient_id": patient_id}
        )
        return body["recordings"]

    async def get_recording(self, recording_id: str) -> Dict[str, Any]:
        body = await self._request("GET", f"/api/recordings/{recording_id}")
        return body["recording"]

    async def update_recording(self, recording_id: str, **fields: Any) -> Dict[str, Any]:
        body = await self._request("PUT", f"/api/recordings/{recording_id}", json=fields)
        return body["recording"]

    async def delete_recording(self, recording_id: str, studio_id: Optional[str] = None) -> None:
        await self._request(
            "DELETE", f"/api/recordings/{recording_id}", params={"studio_id": studio_id}
        )

    # Processing

    async def process_recording(self, recording_id: str) -> Dict[str, Any]:
        """Run the AI pipeline. Blocks until the server finishes or fails."""
        return await self._request(
            "POST", f"/api/recordings/{recording_id}/process", timeout=self.process_timeout
        )

    async def get_referto(self, recording_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/recordings/{recording_id}/referto")

    async def list_visit_types(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/api/visit-types")
