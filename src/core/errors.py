#!/usr/bin/env python3
"""Error taxonomy for the image acquisition and crop pipeline."""

from __future__ import annotations


class ImagePipelineError(Exception):
    """Base for every advisory error raised by a pipeline stage."""

    code = "image_pipeline_error"
    status = 500
    default_message = "Impossibile elaborare l'immagine"

    def __init__(self, detail: str = "", *, user_message: str | None = None) -> None:
        super().__init__(detail or self.default_message)
        self.detail = detail
        self.user_message = user_message or self.default_message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.user_message, "code": self.code, "detail": self.detail}


class NoImageSelected(ImagePipelineError):
    code = "no_image_selected"
    status = 400
    default_message = "Seleziona un'immagine"


class UnsupportedMediaType(ImagePipelineError):
    code = "unsupported_media_type"
    status = 415
    default_message = "File non supportato: usa PNG, JPG o WEBP"


class PayloadTooLarge(ImagePipelineError):
    code = "payload_too_large"
    status = 413
    default_message = "File troppo grande (max 10MB)"


class DecodeFailure(ImagePipelineError):
    code = "decode_failure"
    status = 422
    default_message = "Impossibile leggere l'immagine, prova con un altro file"


class CropTooSmall(ImagePipelineError):
    code = "crop_too_small"
    status = 422
    default_message = "Seleziona un'area più grande"


class RenderSurfaceUnavailable(ImagePipelineError):
    code = "render_surface_unavailable"
    status = 500
    default_message = "Impossibile elaborare l'immagine, prova con un altro browser o dispositivo"


class EncodingFailed(ImagePipelineError):
    code = "encoding_failed"
    status = 500
    default_message = "Conversione dell'immagine non riuscita"
