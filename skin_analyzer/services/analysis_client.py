from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Optional

import httpx

from skin_analyzer.errors import AnalysisTimeoutError, ConfigurationError, NetworkError, ServiceError
from skin_analyzer.models import RawAnalysisResult, SubmissionRequest
from skin_analyzer.services.request_gate import Admission

logger = logging.getLogger("skin-analyzer.client")


def build_payload(request: SubmissionRequest, *, shop: str) -> dict[str, Any]:
    context = request.context.model_dump(mode="json", by_alias=True)
    return {
        "shop": shop,
        "sessionId": request.session_id,
        "image": request.image.payload,
        "mimeType": request.image.mime_type,
        "fileName": request.file_name or "photo.jpg",
        "context": {
            "locale": context["locale"],
            "userAgent": context["userAgent"],
            "timestamp": context["timestamp"],
        },
    }


def _first_str(*values: Any) -> Optional[str]:
    for value in values:
        if isinstance(value, str):
            return value
    return None


def _first_list(*values: Any) -> Optional[list[dict[str, Any]]]:
    for value in values:
        if isinstance(value, list):
            return [item for item in value if isinstance(item, dict)]
    return None


def parse_raw_result(data: Any) -> RawAnalysisResult:
    # n8n "Respond to Webhook" nodes frequently wrap the item in an array.
    if isinstance(data, list) and data and isinstance(data[0], dict):
        data = data[0]
    if not isinstance(data, dict):
        raise ServiceError("Invalid analysis response body")

    success = data.get("success")
    if isinstance(success, str):
        success = success.strip().lower() not in {"0", "false", "no", "n"}
    if not isinstance(success, bool):
        success = True

    error = _first_str(data.get("error"))
    if not success:
        raise ServiceError(error or "Analysis service reported a failure")

    return RawAnalysisResult(
        success=True,
        message=_first_str(data.get("message"), data.get("analysis")),
        products=_first_list(data.get("products"), data.get("recommendations")),
        error=error,
    )


class AnalysisClient:
    def __init__(
        self,
        *,
        endpoint_url: Optional[str],
        shop: str = "",
        timeout_s: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._endpoint_url = (endpoint_url or "").strip() or None
        self._shop = shop
        self._timeout_s = timeout_s
        self._transport = transport

    @property
    def configured(self) -> bool:
        return self._endpoint_url is not None

    async def _post(self, url: str, payload: dict[str, Any], *, timeout_s: float) -> httpx.Response:
        async with httpx.AsyncClient(timeout=timeout_s, transport=self._transport) as client:
            return await client.post(
                url,
                headers={"Content-Type": "application/json"},
                json=payload,
            )

    async def submit(
        self,
        request: SubmissionRequest,
        *,
        admission: Optional[Admission] = None,
        timeout_s: Optional[float] = None,
    ) -> RawAnalysisResult:
        """POST the submission to the analysis webhook and return its parsed reply.

        The call runs as a task bound to `admission` as its cancellation handle.
        When the timeout fires first the task is cancelled and its response is
        discarded; when the response arrives first the timer is dropped. The
        admission is released exactly once whichever way this returns.
        """

        started = time.monotonic()
        timeout = self._timeout_s if timeout_s is None else timeout_s
        try:
            url = self._endpoint_url
            if not url:
                raise ConfigurationError("analysis webhook url is not configured")

            payload = build_payload(request, shop=self._shop)
            task = asyncio.ensure_future(self._post(url, payload, timeout_s=timeout))
            if admission is not None:
                admission.bind(task)

            try:
                res = await asyncio.wait_for(task, timeout=timeout)
            except asyncio.TimeoutError as exc:
                raise AnalysisTimeoutError(f"no response after {timeout}s") from exc
            except httpx.TimeoutException as exc:
                raise AnalysisTimeoutError(str(exc) or "upstream timeout") from exc
            except httpx.RequestError as exc:
                raise NetworkError(str(exc) or exc.__class__.__name__) from exc

            try:
                data = res.json()
            except Exception:
                data = None

            if not res.is_success:
                message = None
                if isinstance(data, dict):
                    message = _first_str(data.get("error"), data.get("message"))
                raise ServiceError(message, status=res.status_code)

            result = parse_raw_result(data)
            logger.info(
                "analysis_received session_id=%s status=%s elapsed_ms=%s products=%s",
                request.session_id,
                res.status_code,
                int((time.monotonic() - started) * 1000),
                len(result.products or []),
            )
            return result
        except (AnalysisTimeoutError, NetworkError, ServiceError, ConfigurationError) as exc:
            logger.warning(
                "analysis_failed session_id=%s error=%s elapsed_ms=%s err=%s",
                request.session_id,
                exc.code,
                int((time.monotonic() - started) * 1000),
                exc.detail,
            )
            raise
        finally:
            if admission is not None:
                admission.release()
