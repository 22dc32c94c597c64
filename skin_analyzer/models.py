from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

NORMALIZED_MIME_TYPE = "image/jpeg"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", alias_generator=to_camel, populate_by_name=True)


class ImageAsset(_Frozen):
    data: bytes = Field(repr=False)
    mime_type: str
    file_name: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def byte_length(self) -> int:
        return len(self.data)


class NormalizedImage(_Frozen):
    payload: str = Field(repr=False)
    mime_type: str = NORMALIZED_MIME_TYPE
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    quality: float = Field(gt=0.0, le=1.0)


class ClientContext(_Frozen):
    locale: str = "fr-FR"
    user_agent: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)


class SubmissionRequest(_Frozen):
    session_id: str
    image: NormalizedImage
    file_name: Optional[str] = None
    context: ClientContext
    created_at: datetime = Field(default_factory=_utcnow)


class RawAnalysisResult(_Frozen):
    success: bool = True
    message: Optional[str] = None
    products: Optional[list[dict[str, Any]]] = None
    error: Optional[str] = None


class InterpretedProfile(_Frozen):
    skin_type: str
    recommended_range: str = ""
    global_appearance: str = ""
    observations: tuple[str, ...] = ()
    priorities: tuple[str, ...] = ()


class RoutineStep(_Frozen):
    role: str
    benefit: str
    tip: Optional[str] = None


class Routine(_Frozen):
    morning: tuple[RoutineStep, ...] = ()
    evening: tuple[RoutineStep, ...] = ()


class Product(_Frozen):
    title: str
    type: str = ""
    benefit: str = ""
    price: str = ""
    handle: str = ""


class AnalysisResult(_Frozen):
    session_id: str
    skin_type: str
    recommended_range: str = ""
    global_appearance: str = ""
    observations: tuple[str, ...] = ()
    priorities: tuple[str, ...] = ()
    routine: Routine
    products: tuple[Product, ...] = ()
    created_at: datetime = Field(default_factory=_utcnow)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
