from __future__ import annotations

import asyncio
import base64
import io
import logging

from PIL import Image, UnidentifiedImageError

from skin_analyzer.config import AnalyzerSettings
from skin_analyzer.errors import ImageDecodeError, ImageValidationError
from skin_analyzer.models import NORMALIZED_MIME_TYPE, ImageAsset, NormalizedImage

logger = logging.getLogger("skin-analyzer.image")

_BACKGROUND = (255, 255, 255)


def validate_asset(asset: ImageAsset, settings: AnalyzerSettings) -> None:
    mime_type = (asset.mime_type or "").strip().lower()
    if mime_type not in settings.accepted_mime_types:
        raise ImageValidationError(
            "unsupported_format",
            "Format de fichier non supporté. Utilisez JPG, PNG ou WEBP.",
            status_code=415,
        )
    if asset.byte_length == 0:
        raise ImageValidationError("empty_file", "Le fichier est vide.")
    if asset.byte_length > settings.max_upload_bytes:
        max_mb = settings.max_upload_bytes // (1024 * 1024)
        raise ImageValidationError(
            "file_too_large",
            f"Fichier trop volumineux. Maximum {max_mb}MB.",
            status_code=413,
        )


def scaled_size(width: int, height: int, max_width: int, max_height: int) -> tuple[int, int]:
    if width <= max_width and height <= max_height:
        return width, height
    # floor(dim * ratio) in integer arithmetic; the binding side lands exactly on the box.
    if max_width * height <= max_height * width:
        return max_width, max(1, height * max_width // width)
    return max(1, width * max_height // height), max_height


def _flatten(image: Image.Image) -> Image.Image:
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, _BACKGROUND)
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def normalize(asset: ImageAsset, max_width: int, max_height: int, quality: float) -> NormalizedImage:
    """Decode, downscale into the bounding box and re-encode as JPEG.

    Runs for every upload, even ones that are already small JPEGs, so the
    payload size only depends on the bounding box and quality.
    """

    if not 0 < quality <= 1:
        raise ValueError("quality must be in (0, 1]")

    try:
        image = Image.open(io.BytesIO(asset.data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError(str(exc)) from exc

    width, height = image.size
    if width <= 0 or height <= 0:
        raise ImageDecodeError("image has no pixels")

    target = scaled_size(width, height, max_width, max_height)
    rgb = _flatten(image)
    if target != (width, height):
        rgb = rgb.resize(target, Image.LANCZOS)

    buf = io.BytesIO()
    rgb.save(buf, format="JPEG", quality=max(1, min(100, round(quality * 100))))
    payload = base64.b64encode(buf.getvalue()).decode("ascii")

    logger.debug(
        "image_normalized src=%sx%s dst=%sx%s bytes_in=%s bytes_out=%s",
        width,
        height,
        target[0],
        target[1],
        asset.byte_length,
        buf.tell(),
    )
    return NormalizedImage(
        payload=payload,
        mime_type=NORMALIZED_MIME_TYPE,
        width=target[0],
        height=target[1],
        quality=quality,
    )


async def normalize_async(asset: ImageAsset, settings: AnalyzerSettings) -> NormalizedImage:
    return await asyncio.to_thread(
        normalize,
        asset,
        settings.max_image_width,
        settings.max_image_height,
        settings.image_quality,
    )
