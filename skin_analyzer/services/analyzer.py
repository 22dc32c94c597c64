from __future__ import annotations

import logging
import uuid
from typing import Optional

from skin_analyzer.config import AnalyzerSettings
from skin_analyzer.models import AnalysisResult, ClientContext, ImageAsset, SubmissionRequest
from skin_analyzer.services.analysis_client import AnalysisClient
from skin_analyzer.services.image_normalizer import normalize_async, validate_asset
from skin_analyzer.services.products import normalize_products, select_products_for_range
from skin_analyzer.services.request_gate import GateRegistry
from skin_analyzer.services.response_interpreter import interpret
from skin_analyzer.services.routine import synthesize

logger = logging.getLogger("skin-analyzer.pipeline")


def new_session_id() -> str:
    return f"skin_{uuid.uuid4().hex}"


class SkinAnalyzer:
    def __init__(
        self,
        settings: AnalyzerSettings,
        *,
        client: Optional[AnalysisClient] = None,
        gates: Optional[GateRegistry] = None,
    ) -> None:
        self.settings = settings
        self.client = client or AnalysisClient(
            endpoint_url=settings.webhook_url,
            shop=settings.shop,
            timeout_s=settings.analysis_timeout_s,
        )
        self.gates = gates or GateRegistry(min_interval_ms=settings.min_request_interval_ms)

    async def analyze(
        self,
        asset: ImageAsset,
        *,
        client_key: str = "",
        context: Optional[ClientContext] = None,
        now_ms: Optional[int] = None,
    ) -> AnalysisResult:
        validate_asset(asset, self.settings)
        image = await normalize_async(asset, self.settings)

        gate = self.gates.get(client_key)
        with gate.try_admit(now_ms) as admission:
            request = SubmissionRequest(
                session_id=new_session_id(),
                image=image,
                file_name=asset.file_name,
                context=context or ClientContext(locale=self.settings.default_locale),
            )
            logger.info(
                "analysis_submitted session_id=%s size=%sx%s completed_before=%s",
                request.session_id,
                image.width,
                image.height,
                gate.state.completed_count,
            )
            raw = await self.client.submit(request, admission=admission)

        profile = interpret(raw.message)
        routine = synthesize(profile)
        products = select_products_for_range(normalize_products(raw.products), profile.recommended_range)

        logger.info(
            "analysis_interpreted session_id=%s skin_type=%r range=%r observations=%s priorities=%s",
            request.session_id,
            profile.skin_type,
            profile.recommended_range,
            len(profile.observations),
            len(profile.priorities),
        )
        return AnalysisResult(
            session_id=request.session_id,
            skin_type=profile.skin_type,
            recommended_range=profile.recommended_range,
            global_appearance=profile.global_appearance,
            observations=profile.observations,
            priorities=profile.priorities,
            routine=routine,
            products=tuple(products),
        )
