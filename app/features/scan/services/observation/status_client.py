from typing import Any, Dict, Optional

import httpx

from app.features.quota.services.quota_table import QuotaTable, compute_checksum
from app.platform.config import settings
from app.platform.exceptions import DomainError
from app.platform.logger import get_logger

logger = get_logger(__name__)


class StatusFetchError(DomainError):
    """Transport, HTTP or parse failure while talking to the API."""

    def __init__(self, message: str, code: str = "STATUS_FETCH_FAILED", status_code: Optional[int] = None):
        super().__init__(message, code)
        self.status_code = status_code


class ScanStatusClient:
    """
    HTTP client for the ADAShield API, used as the status source of
    ScanObservationController.

    Either pass a ready httpx.AsyncClient (tests use an ASGI transport) or
    let the client build one from API_BASE_URL.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        headers = {"X-Session-Id": session_id} if session_id else {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.API_BASE_URL,
            timeout=timeout or settings.STATUS_FETCH_TIMEOUT,
            headers=headers,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_data(self, path: str) -> Dict[str, Any]:
        try:
            response = await self._client.get(path)
        except httpx.HTTPError as e:
            raise StatusFetchError(f"Network error: {e.__class__.__name__}: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise StatusFetchError(
                f"Invalid JSON from {path} (HTTP {response.status_code})",
                code="INVALID_RESPONSE",
                status_code=response.status_code,
            ) from e

        if response.status_code >= 400:
            message = body.get("message", "Request failed") if isinstance(body, dict) else "Request failed"
            code = body.get("code", "HTTP_ERROR") if isinstance(body, dict) else "HTTP_ERROR"
            raise StatusFetchError(
                f"HTTP {response.status_code}: {message}",
                code=code,
                status_code=response.status_code,
            )

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise StatusFetchError(f"Response from {path} has no data object", code="INVALID_RESPONSE")
        return data

    async def get_status(self, scan_id: str) -> Dict[str, Any]:
        """Status payload: scanId, status, progress, url, createdAt, completedAt, errorMessage."""
        return await self._get_data(f"/scans/{scan_id}")

    async def fetch_quota_table(self) -> Dict[str, Any]:
        return await self._get_data("/quotas")

    async def verify_quota_table(self, local: QuotaTable) -> bool:
        """
        True when the server serves exactly the quota table this process loaded.

        The checksum is recomputed from the served tiers rather than trusted.
        """
        remote = await self.fetch_quota_table()
        try:
            remote_checksum = compute_checksum(remote)
        except KeyError as e:
            raise StatusFetchError(f"Quota table response missing {e}", code="INVALID_RESPONSE") from e

        if remote_checksum != remote.get("checksum"):
            logger.warning("Server quota table checksum does not match its contents")
            return False

        matches = remote_checksum == local.checksum
        if not matches:
            logger.warning(
                f"Quota table drift: server version={remote.get('version')} "
                f"checksum={remote_checksum[:12]}, local version={local.version} "
                f"checksum={local.checksum[:12]}"
            )
        return matches
