from __future__ import annotations

import asyncio
import json
from pathlib import Path
import sys
import unittest

import httpx

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from skin_analyzer.errors import AnalysisTimeoutError, ConfigurationError, NetworkError, ServiceError
from skin_analyzer.models import ClientContext, NormalizedImage, SubmissionRequest
from skin_analyzer.services.analysis_client import AnalysisClient, parse_raw_result
from skin_analyzer.services.request_gate import RequestGate

WEBHOOK_URL = "https://n8n.example.test/webhook/skin"


def _request() -> SubmissionRequest:
    return SubmissionRequest(
        session_id="skin_test_1",
        image=NormalizedImage(payload="aGVsbG8=", width=10, height=10, quality=0.85),
        file_name="selfie.png",
        context=ClientContext(locale="fr-FR", user_agent="UnitTest/1.0"),
    )


def _client(handler, **kwargs) -> AnalysisClient:
    return AnalysisClient(
        endpoint_url=WEBHOOK_URL,
        shop="demo-shop.myshopify.com",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestAnalysisClient(unittest.IsolatedAsyncioTestCase):
    async def test_posts_json_payload_and_parses_message(self) -> None:
        captured: dict[str, object] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["method"] = request.method
            captured["url"] = str(request.url)
            captured["content_type"] = request.headers.get("content-type")
            captured["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"success": True, "analysis": "Peau mixte.", "recommendations": [{"title": "Gel"}, "junk"]},
            )

        result = await _client(handler).submit(_request())

        self.assertEqual(captured["method"], "POST")
        self.assertEqual(captured["url"], WEBHOOK_URL)
        self.assertEqual(captured["content_type"], "application/json")
        body = captured["body"]
        assert isinstance(body, dict)
        self.assertEqual(body["shop"], "demo-shop.myshopify.com")
        self.assertEqual(body["sessionId"], "skin_test_1")
        self.assertEqual(body["image"], "aGVsbG8=")
        self.assertEqual(body["fileName"], "selfie.png")
        self.assertEqual(body["context"]["locale"], "fr-FR")
        self.assertEqual(body["context"]["userAgent"], "UnitTest/1.0")
        self.assertIn("timestamp", body["context"])

        self.assertTrue(result.success)
        self.assertEqual(result.message, "Peau mixte.")
        self.assertEqual(result.products, [{"title": "Gel"}])

    async def test_non_2xx_is_service_error_with_status_and_message(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": "workflow crashed"})

        with self.assertRaises(ServiceError) as ctx:
            await _client(handler).submit(_request())
        self.assertEqual(ctx.exception.status, 500)
        self.assertEqual(ctx.exception.message, "workflow crashed")

    async def test_success_false_is_service_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"success": False, "error": "no face detected"})

        with self.assertRaises(ServiceError) as ctx:
            await _client(handler).submit(_request())
        self.assertEqual(ctx.exception.message, "no face detected")
        self.assertIsNone(ctx.exception.status)

    async def test_invalid_json_body_is_service_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>oops</html>")

        with self.assertRaises(ServiceError):
            await _client(handler).submit(_request())

    async def test_transport_failure_is_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(NetworkError):
            await _client(handler).submit(_request())

    async def test_missing_endpoint_is_configuration_error_and_releases(self) -> None:
        gate = RequestGate(min_interval_ms=0)
        admission = gate.try_admit(now_ms=0)
        client = AnalysisClient(endpoint_url=None)
        with self.assertRaises(ConfigurationError):
            await client.submit(_request(), admission=admission)
        self.assertFalse(gate.state.in_flight)
        self.assertEqual(gate.state.completed_count, 1)

    async def test_blank_endpoint_is_configuration_error_without_request(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(200, json={"message": "ok"})

        client = AnalysisClient(endpoint_url="   ", transport=httpx.MockTransport(handler))
        self.assertFalse(client.configured)
        with self.assertRaises(ConfigurationError):
            await client.submit(_request())
        self.assertEqual(calls, [])

    async def test_timeout_raises_and_releases_exactly_once(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json={"message": "too late"})

        gate = RequestGate(min_interval_ms=0)
        releases: list[int] = []
        original_release = gate._release

        def counting_release() -> None:
            releases.append(1)
            original_release()

        gate._release = counting_release  # type: ignore[method-assign]
        admission = gate.try_admit(now_ms=0)

        with self.assertRaises(AnalysisTimeoutError):
            await _client(handler).submit(_request(), admission=admission, timeout_s=0.05)

        self.assertEqual(len(releases), 1)
        self.assertFalse(gate.state.in_flight)
        self.assertIsNone(gate.state.cancellation_handle)
        admission.release()
        self.assertEqual(len(releases), 1)

    async def test_success_releases_admission(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"message": "ok"})

        gate = RequestGate(min_interval_ms=0)
        admission = gate.try_admit(now_ms=0)
        await _client(handler).submit(_request(), admission=admission)
        self.assertTrue(admission.released)
        self.assertEqual(gate.state.completed_count, 1)


class TestParseRawResult(unittest.TestCase):
    def test_unwraps_single_item_array(self) -> None:
        result = parse_raw_result([{"message": "Peau sèche", "products": [{"title": "Crème"}]}])
        self.assertEqual(result.message, "Peau sèche")
        self.assertEqual(result.products, [{"title": "Crème"}])

    def test_message_takes_precedence_over_analysis(self) -> None:
        result = parse_raw_result({"message": "first", "analysis": "second"})
        self.assertEqual(result.message, "first")

    def test_missing_fields_are_none(self) -> None:
        result = parse_raw_result({})
        self.assertTrue(result.success)
        self.assertIsNone(result.message)
        self.assertIsNone(result.products)

    def test_string_false_success_is_failure(self) -> None:
        with self.assertRaises(ServiceError):
            parse_raw_result({"success": "false", "error": "quota"})
