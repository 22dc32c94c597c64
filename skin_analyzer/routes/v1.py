from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, File, Form, Header, HTTPException, Request, UploadFile

from skin_analyzer.errors import AdmissionDenied, AnalyzerError
from skin_analyzer.models import ClientContext, ImageAsset
from skin_analyzer.services.analyzer import SkinAnalyzer
from skin_analyzer.store.result_store import PersistentResultStore

router = APIRouter()

logger = logging.getLogger("skin-analyzer.v1")

SUCCESS_MESSAGE = "Analyse terminée ! Découvre tes résultats ci-dessous."


def _analyzer(request: Request) -> SkinAnalyzer:
    return request.app.state.analyzer


def _result_store(request: Request) -> PersistentResultStore:
    return request.app.state.result_store


def _http_error(exc: AnalyzerError) -> HTTPException:
    headers = None
    retry_after_ms = getattr(exc, "remaining_ms", None)
    if isinstance(retry_after_ms, int):
        headers = {"Retry-After": str(max(1, -(-retry_after_ms // 1000)))}
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail(), headers=headers)


@router.get("/upload-constraints")
def upload_constraints(request: Request):
    settings = _analyzer(request).settings
    return {
        "accepted_formats": list(settings.accepted_mime_types),
        "max_file_size": settings.max_upload_bytes,
        "max_width": settings.max_image_width,
        "max_height": settings.max_image_height,
        "min_request_interval_ms": settings.min_request_interval_ms,
    }


@router.post("/analyze")
async def analyze(
    request: Request,
    file: UploadFile = File(...),
    locale: Optional[str] = Form(default=None),
    user_agent: Optional[str] = Header(default=None, alias="User-Agent"),
    x_client_id: Optional[str] = Header(default=None, alias="X-Client-ID"),
):
    analyzer = _analyzer(request)
    blob = await file.read()
    asset = ImageAsset(
        data=blob,
        mime_type=(file.content_type or "").strip().lower(),
        file_name=file.filename,
    )
    context = ClientContext(
        locale=(locale or "").strip() or analyzer.settings.default_locale,
        user_agent=(user_agent or "")[:500],
    )
    client_key = (x_client_id or "").strip() or (request.client.host if request.client else "")

    try:
        result = await analyzer.analyze(asset, client_key=client_key, context=context)
    except AdmissionDenied as exc:
        logger.info("analysis_denied client_key=%s reason=%s", client_key, exc.code)
        raise _http_error(exc)
    except AnalyzerError as exc:
        logger.warning("analysis_error client_key=%s code=%s err=%s", client_key, exc.code, exc.detail)
        raise _http_error(exc)

    await _result_store(request).put(result)
    return {
        "ok": True,
        "session_id": result.session_id,
        "message": SUCCESS_MESSAGE,
        "analysis": result.to_payload(),
    }


@router.get("/analyses/{session_id}")
async def get_analysis(request: Request, session_id: str):
    try:
        result = await _result_store(request).get(session_id)
    except ValueError:
        raise HTTPException(status_code=400, detail={"error": "invalid_session_id"})
    if result is None:
        raise HTTPException(status_code=404, detail={"error": "analysis_not_found"})
    return {"ok": True, "session_id": result.session_id, "analysis": result.to_payload()}
