from __future__ import annotations

import io
import os
from pathlib import Path
import sys
import unittest

import httpx
from fastapi.testclient import TestClient
from PIL import Image

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from skin_analyzer.config import AnalyzerSettings
from skin_analyzer.main import create_app
from skin_analyzer.services.analysis_client import AnalysisClient
from skin_analyzer.services.analyzer import SkinAnalyzer

WEBHOOK_URL = "https://n8n.example.test/webhook/skin"


def _jpeg() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (1600, 1200), (190, 150, 130)).save(buf, format="JPEG")
    return buf.getvalue()


def _ok_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "success": True,
            "message": "Ta peau est plutôt sèche avec des ridules.\n- Ridules au coin des yeux\nGamme Retilift conseillée.",
            "products": [{"title": "Sérum Retilift", "type": "Sérum", "price": 39, "handle": "serum-retilift"}],
        },
    )


def _app(handler=_ok_handler, *, webhook_url: str | None = WEBHOOK_URL, **settings_kwargs):
    os.environ["REDIS_URL"] = ""
    settings = AnalyzerSettings(webhook_url=webhook_url, **settings_kwargs)
    client = AnalysisClient(endpoint_url=webhook_url, transport=httpx.MockTransport(handler))
    return create_app(analyzer=SkinAnalyzer(settings, client=client))


def _upload(client: TestClient, *, content: bytes, content_type: str = "image/jpeg", client_id: str = "page-1"):
    return client.post(
        "/v1/analyze",
        headers={"X-Client-ID": client_id, "User-Agent": "UnitTest/1.0"},
        files={"file": ("selfie.jpg", content, content_type)},
        data={"locale": "fr-FR"},
    )


class TestAnalyzeEndpoint(unittest.TestCase):
    def test_analyze_returns_structured_result_and_stores_it(self) -> None:
        with TestClient(_app()) as client:
            res = _upload(client, content=_jpeg())
            self.assertEqual(res.status_code, 200)
            data = res.json()
            self.assertTrue(data["ok"])
            self.assertEqual(data["message"], "Analyse terminée ! Découvre tes résultats ci-dessous.")

            analysis = data["analysis"]
            self.assertEqual(analysis["skinType"], "Peau sèche")
            self.assertEqual(analysis["recommendedRange"], "Retilift")
            self.assertEqual(len(analysis["routine"]["morning"]), 4)
            self.assertEqual(len(analysis["routine"]["evening"]), 5)
            self.assertEqual(analysis["products"][0]["handle"], "serum-retilift")
            self.assertEqual(analysis["products"][0]["price"], "39,00 €")
            self.assertIn("Ridules au coin des yeux", analysis["observations"])

            stored = client.get(f"/v1/analyses/{data['session_id']}")

        self.assertEqual(stored.status_code, 200)
        self.assertEqual(stored.json()["analysis"], analysis)

    def test_unsupported_format_is_rejected_before_network(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return _ok_handler(request)

        with TestClient(_app(handler)) as client:
            res = _upload(client, content=b"GIF89a", content_type="image/gif")

        self.assertEqual(res.status_code, 415)
        self.assertEqual(res.json()["detail"]["error"], "unsupported_format")
        self.assertEqual(calls, [])

    def test_corrupt_image_is_422(self) -> None:
        with TestClient(_app()) as client:
            res = _upload(client, content=b"not really a jpeg")
        self.assertEqual(res.status_code, 422)
        self.assertEqual(res.json()["detail"]["error"], "image_decode_failed")

    def test_second_submission_too_soon_is_429_per_client(self) -> None:
        with TestClient(_app(min_request_interval_s=60)) as client:
            first = _upload(client, content=_jpeg())
            second = _upload(client, content=_jpeg())
            other_page = _upload(client, content=_jpeg(), client_id="page-2")

        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 429)
        self.assertEqual(second.json()["detail"]["error"], "rate_limited")
        self.assertGreater(second.json()["detail"]["retry_after_ms"], 0)
        self.assertIn("retry-after", second.headers)
        self.assertEqual(other_page.status_code, 200)

    def test_upstream_failure_is_502(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, json={"error": "workflow inactive"})

        with TestClient(_app(handler)) as client:
            res = _upload(client, content=_jpeg())

        self.assertEqual(res.status_code, 502)
        detail = res.json()["detail"]
        self.assertEqual(detail["error"], "service_error")
        self.assertEqual(detail["upstream_status"], 503)
        self.assertEqual(detail["message"], "Une erreur est survenue. Veuillez réessayer.")

    def test_missing_webhook_is_503(self) -> None:
        with TestClient(_app(webhook_url=None)) as client:
            res = _upload(client, content=_jpeg())
        self.assertEqual(res.status_code, 503)
        self.assertEqual(res.json()["detail"]["error"], "configuration_missing")

    def test_unknown_analysis_is_404(self) -> None:
        with TestClient(_app()) as client:
            res = client.get("/v1/analyses/skin_does_not_exist")
        self.assertEqual(res.status_code, 404)


class TestServiceEndpoints(unittest.TestCase):
    def test_upload_constraints(self) -> None:
        with TestClient(_app(max_upload_bytes=5 * 1024 * 1024)) as client:
            res = client.get("/v1/upload-constraints")
        self.assertEqual(res.status_code, 200)
        data = res.json()
        self.assertEqual(data["max_file_size"], 5 * 1024 * 1024)
        self.assertIn("image/webp", data["accepted_formats"])
        self.assertEqual(data["max_width"], 1200)

    def test_healthz(self) -> None:
        with TestClient(_app()) as client:
            res = client.get("/healthz")
        self.assertEqual(res.status_code, 200)
        data = res.json()
        self.assertTrue(data["ok"])
        self.assertEqual(data["service"], "skin-analyzer")
        self.assertEqual(data["result_store_backend"], "memory")
        self.assertTrue(data["webhook_configured"])
