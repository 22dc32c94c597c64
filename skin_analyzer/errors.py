from __future__ import annotations

from typing import Any, Optional


class AnalyzerError(Exception):
    """Base class for every failure the analysis pipeline reports to the page.

    `code` is stable and machine-readable, `user_message` is what the storefront
    shows in its notification.
    """

    code = "analysis_failed"
    status_code = 500
    user_message = "Une erreur est survenue. Veuillez réessayer."

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(detail or self.code)
        self.detail = detail

    def to_detail(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.user_message}


class ConfigurationError(AnalyzerError):
    code = "configuration_missing"
    status_code = 503
    user_message = "Configuration manquante. Veuillez contacter le support."


class ImageValidationError(AnalyzerError):
    status_code = 400

    def __init__(self, code: str, user_message: str, *, status_code: int = 400) -> None:
        super().__init__(code)
        self.code = code
        self.user_message = user_message
        self.status_code = status_code


class ImageDecodeError(AnalyzerError):
    code = "image_decode_failed"
    status_code = 422
    user_message = "Erreur lors du traitement de l'image."


class AdmissionDenied(AnalyzerError):
    """Not a failure of the pipeline: the gate refused to start a new submission."""


class AlreadyInFlightError(AdmissionDenied):
    code = "already_in_flight"
    status_code = 409
    user_message = "Une analyse est déjà en cours. Merci de patienter."


class TooSoonError(AdmissionDenied):
    code = "rate_limited"
    status_code = 429
    user_message = "Merci de patienter quelques secondes avant une nouvelle analyse."

    def __init__(self, remaining_ms: int) -> None:
        super().__init__(f"retry in {remaining_ms}ms")
        self.remaining_ms = remaining_ms

    def to_detail(self) -> dict[str, Any]:
        return {**super().to_detail(), "retry_after_ms": self.remaining_ms}


class AnalysisTimeoutError(AnalyzerError):
    code = "analysis_timeout"
    status_code = 504
    user_message = "L'analyse prend trop de temps. Veuillez réessayer."


class NetworkError(AnalyzerError):
    code = "network_error"
    status_code = 502


class ServiceError(AnalyzerError):
    code = "service_error"
    status_code = 502

    def __init__(self, message: Optional[str] = None, *, status: Optional[int] = None) -> None:
        super().__init__(message or (f"HTTP error! status: {status}" if status else None))
        self.message = message
        self.status = status

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        if self.status is not None:
            detail["upstream_status"] = self.status
        if self.message:
            detail["upstream_error"] = self.message[:500]
        return detail
