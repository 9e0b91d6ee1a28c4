"""Embeddable content — modality resolution, canonical form, and hashing."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from memostore.exceptions import ValidationError


class Modality(str, Enum):
    """Kind of content being embedded."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    MULTI_IMAGES = "multi_images"
    VL = "vl"
    """Fused vision-language: more than one of text / image / video."""


def _present(value: str | None) -> str | None:
    if value is None:
        return None
    return value if value.strip() else None


@dataclass(frozen=True, slots=True)
class Content:
    """One item to embed.

    Strings may be plain text or image/video URLs (or base64 data URIs).
    Blank strings count as absent.  ``multi_images`` cannot be combined
    with any other field.
    """

    text: str | None = None
    image: str | None = None
    video: str | None = None
    multi_images: tuple[str, ...] | None = None

    @classmethod
    def coerce(cls, value: Content | str) -> Content:
        """Accept plain text wherever a :class:`Content` is expected."""
        if isinstance(value, Content):
            return value
        if isinstance(value, str):
            return cls(text=value)
        msg = f"Expected Content or str, got {type(value).__name__}"
        raise ValidationError(msg)

    def payload(self) -> dict[str, Any]:
        """The present fields only, as sent to the provider."""
        out: dict[str, Any] = {}
        for name in ("text", "image", "video"):
            value = _present(getattr(self, name))
            if value is not None:
                out[name] = value
        if self.multi_images:
            images = [img for img in self.multi_images if _present(img) is not None]
            if images:
                out["multi_images"] = images
        return out

    @property
    def modality(self) -> Modality:
        """Resolve the modality, raising ``ValidationError`` on bad combinations."""
        fields = self.payload()
        if not fields:
            msg = "Content must carry at least one of text, image, video, multi_images"
            raise ValidationError(msg)
        if "multi_images" in fields:
            if len(fields) > 1:
                msg = "multi_images cannot be combined with text, image or video"
                raise ValidationError(msg)
            return Modality.MULTI_IMAGES
        if len(fields) > 1:
            return Modality.VL
        return Modality(next(iter(fields)))

    @property
    def has_video(self) -> bool:
        return _present(self.video) is not None

    def canonical(self) -> str:
        """Sorted-key compact JSON of the present fields."""
        return json.dumps(self.payload(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    def content_hash(self) -> str:
        """SHA-256 hex digest of :meth:`canonical`."""
        return hashlib.sha256(self.canonical().encode("utf-8")).hexdigest()


def model_signature(
    model: str,
    *,
    output_type: str | None = None,
    dimension: int | None = None,
    fps: float | None = None,
) -> dict[str, Any]:
    """Configuration fields that determine the returned vector.

    Unset optional fields are omitted.
    """
    signature: dict[str, Any] = {"model": model}
    if output_type is not None:
        signature["outputType"] = output_type
    if dimension is not None:
        signature["dimension"] = dimension
    if fps is not None:
        signature["fps"] = fps
    return signature


def signature_hash(signature: dict[str, Any]) -> str:
    """SHA-256 hex digest of a model signature."""
    encoded = json.dumps(signature, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()
