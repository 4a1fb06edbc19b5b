#!/usr/bin/env python3
"""
image_urls.py — CDN URL builder for gallery images.

Given a raw source descriptor ({"asset": "<path or id>"}) and a target width,
returns the final bitmap URL. The layout engine never calls this; the
renderer does, asking for a width that suits the aspect class it was given.
"""
from __future__ import annotations

import os
from typing import Any, Mapping, Optional
from urllib.parse import quote, urlencode

from gallery_types import Crop

IMAGE_CDN_BASE = os.environ.get(
    "GALLERY_CDN_BASE", "https://cdn.paguro.example/images").rstrip("/")

DEFAULT_QUALITY = 80
STORE_WIDTH = 1600  # width baked into the src handed to the gallery
VIEWER_WIDTH = 1600

TILE_WIDTHS = {
    "mobile": 640,
    "desktop": 1024,
}
ULTRAWIDE_WIDTH = 1600


def _asset_ref(raw_source: Any) -> Optional[str]:
    if isinstance(raw_source, str):
        return raw_source.strip() or None
    if isinstance(raw_source, Mapping):
        asset = raw_source.get("asset")
        if isinstance(asset, Mapping):
            asset = asset.get("_ref") or asset.get("path")
        if isinstance(asset, str) and asset.strip():
            return asset.strip()
    return None


def _fraction(value: float) -> str:
    return f"{value:.4f}".rstrip("0").rstrip(".") or "0"


def crop_rect(crop: Crop) -> Optional[str]:
    """rect=left,top,width,height in fractions of the original, or None for no trim."""
    left = crop.left or 0.0
    top = crop.top or 0.0
    width = 1.0 - left - (crop.right or 0.0)
    height = 1.0 - top - (crop.bottom or 0.0)
    if width <= 0 or height <= 0:
        return None
    if left == 0 and top == 0 and width == 1 and height == 1:
        return None
    return ",".join(_fraction(v) for v in (left, top, width, height))


def build_image_url(raw_source: Any, width: int, quality: int = DEFAULT_QUALITY,
                    crop: Optional[Crop] = None) -> Optional[str]:
    asset = _asset_ref(raw_source)
    if not asset:
        return None
    params = [("w", int(width)), ("q", int(quality)), ("auto", "format")]
    if crop is not None:
        rect = crop_rect(crop)
        if rect:
            params.append(("rect", rect))
    path = quote(asset.lstrip("/"))
    return f"{IMAGE_CDN_BASE}/{path}?{urlencode(params, safe=',')}"


def requested_width(aspect: str, viewport: str) -> int:
    if aspect == "21:9":
        return ULTRAWIDE_WIDTH
    return TILE_WIDTHS.get(viewport, TILE_WIDTHS["desktop"])
