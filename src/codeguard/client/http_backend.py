"""HTTP client for the analysis service.

Speaks the service's JSON envelope ``{success, data, error: {message}}``
over aiohttp and turns every transport or protocol failure into a tagged
AnalysisError so the retry layer can classify it.

Provides:
- HttpAnalysisBackend: aiohttp implementation of AnalysisBackend
"""

import asyncio
from typing import Any

import aiohttp
import structlog

from codeguard.core.config import Config
from codeguard.core.errors import AnalysisError
from codeguard.core.models import AnalysisPayload

logger = structlog.get_logger()

CLIENT_SOURCE = "codeguard-cli"
CLIENT_VERSION = "1.0.0"
PROJECT_MIN_TIMEOUT = 300.0


class HttpAnalysisBackend:
    """Analysis service reached over HTTP.

    Endpoints:
        POST {endpoint}/analyze-enhanced   single snippet
        POST {endpoint}/analyze-project    file set (longer timeout)
        GET  {endpoint}/health             liveness probe

    Args:
        config: Client configuration snapshot (endpoint, key, timeouts)
    """

    def __init__(self, config: Config):
        self.config = config

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def analyze(
        self,
        payload: AnalysisPayload,
        *,
        request_id: str,
        mode: str,
    ) -> dict[str, Any]:
        endpoint = self.config.validate_endpoint()

        if payload.is_project:
            url = f"{endpoint}/analyze-project"
            body = {
                "files": [
                    {
                        "path": f.path,
                        "content": f.content,
                        "language": f.language,
                        "type": "source",
                    }
                    for f in payload.files
                ],
                "analysisDepth": "standard",
                "context": {"requestId": request_id},
            }
            timeout = max(self.config.request_timeout, PROJECT_MIN_TIMEOUT)
        else:
            url = f"{endpoint}/analyze-enhanced"
            body = {
                "code": payload.code,
                "language": payload.language,
                "analysisMode": mode,
                "context": {
                    "source": CLIENT_SOURCE,
                    "version": CLIENT_VERSION,
                    "requestId": request_id,
                },
            }
            timeout = self.config.request_timeout

        logger.debug("backend_request", url=url, request_id=request_id, timeout=timeout)
        envelope = await self._request("POST", url, timeout, json=body)

        if not envelope.get("success"):
            error = envelope.get("error") or {}
            raise AnalysisError.validation(error.get("message") or "Analysis failed", None)

        return envelope.get("data") or {}

    async def health(self) -> dict[str, Any]:
        endpoint = self.config.validate_endpoint()
        timeout = min(self.config.request_timeout, self.config.health_check_timeout)
        return await self._request("GET", f"{endpoint}/health", timeout)

    async def _request(
        self,
        method: str,
        url: str,
        timeout: float,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Perform one HTTP exchange and decode the JSON body.

        Raises:
            AnalysisError: TRANSIENT for network/timeout/429/5xx,
                PERMANENT_REQUEST for other 4xx statuses
        """
        client_timeout = aiohttp.ClientTimeout(total=timeout)
        try:
            async with aiohttp.ClientSession(timeout=client_timeout) as session:
                async with session.request(method, url, json=json, headers=self._headers()) as response:
                    if response.status >= 400:
                        message = await self._error_message(response)
                        raise AnalysisError.from_status(response.status, message, url)
                    body = await response.json(content_type=None)
        except asyncio.TimeoutError:
            raise AnalysisError.timeout(f"Request to {url} timed out after {timeout}s", timeout)
        except aiohttp.ClientConnectionError:
            raise AnalysisError.network(f"Cannot connect to server at {url}")
        except aiohttp.ClientError as e:
            raise AnalysisError.network(f"Request failed: {e}")
        except ValueError:
            raise AnalysisError.validation(f"Malformed response from {url}: invalid JSON", None)

        if not isinstance(body, dict):
            raise AnalysisError.validation("Malformed response: expected a JSON object", None)
        return body

    @staticmethod
    async def _error_message(response: aiohttp.ClientResponse) -> str:
        """Best-effort error text from a failed response."""
        try:
            body = await response.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError):
            return response.reason or "HTTP error"
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and error.get("message"):
                return error["message"]
            if isinstance(error, str):
                return error
        return response.reason or "HTTP error"
