#!/usr/bin/env python3
"""
gallery_types.py — Immutable records shared by the gallery layout engine and viewer.

Records arrive from the media store (or any CMS-like collaborator) as loosely
typed dicts. `GalleryImage.from_record` normalizes them once; everything
downstream can then assume well-formed, hashable values.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

log = logging.getLogger("gallery_types")

PORTRAIT = "portrait"
LANDSCAPE = "landscape"
SQUARE = "square"
PANORAMA = "panorama"

ORIENTATIONS = (PORTRAIT, LANDSCAPE, SQUARE, PANORAMA)

LANGS = ("it", "en")
DEFAULT_LANG = "it"

Caption = Union[str, Dict[str, Optional[str]], None]


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------

def _number(value: Any) -> Optional[float]:
    # bool is an int subclass; a stray True must not become 1.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:  # JSON ints have no upper bound
        return None
    if not math.isfinite(number):
        return None
    return number


def _orientation(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip().lower() in ORIENTATIONS:
        return value.strip().lower()
    if value is not None:
        log.debug("Ignoring unknown orientation %r", value)
    return None


def parse_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return value is True or (isinstance(value, int) and value == 1)


def _clean(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    s = value.strip()
    return s or None


def _pick(record: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in record:
            return record[key]
    return None


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Hotspot:
    """Focal rectangle, every field a fraction of the image in [0, 1]."""
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None

    @classmethod
    def from_value(cls, value: Any) -> Optional["Hotspot"]:
        if isinstance(value, Hotspot):
            return value
        if not isinstance(value, Mapping):
            if value is not None:
                log.debug("Ignoring malformed hotspot %r", value)
            return None
        return cls(
            x=_number(value.get("x")),
            y=_number(value.get("y")),
            width=_number(value.get("width")),
            height=_number(value.get("height")),
        )

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class Crop:
    """Fraction trimmed from each edge of the original asset."""
    top: Optional[float] = None
    bottom: Optional[float] = None
    left: Optional[float] = None
    right: Optional[float] = None

    @classmethod
    def from_value(cls, value: Any) -> Optional["Crop"]:
        if isinstance(value, Crop):
            return value
        if not isinstance(value, Mapping):
            if value is not None:
                log.debug("Ignoring malformed crop %r", value)
            return None
        return cls(
            top=_number(value.get("top")),
            bottom=_number(value.get("bottom")),
            left=_number(value.get("left")),
            right=_number(value.get("right")),
        )

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {"top": self.top, "bottom": self.bottom,
                "left": self.left, "right": self.right}


@dataclass(frozen=True)
class GalleryImage:
    src: str
    raw_source: Optional[Any] = None
    orientation: Optional[str] = None
    asset_orientation: Optional[str] = None
    lock_orientation: bool = False
    hotspot: Optional[Hotspot] = None
    crop: Optional[Crop] = None
    alt: Optional[str] = None
    caption: Caption = None
    country_slug: str = "unknown"

    def __hash__(self) -> int:
        # raw_source / caption may be dicts; identity for caching is the
        # subset of fields the layout actually reads.
        return hash((self.src, self.orientation, self.asset_orientation,
                     self.lock_orientation, self.hotspot, self.crop))

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "GalleryImage":
        """Build an image from a CMS-style dict. Malformed optional fields fall back to defaults."""
        src = _clean(record.get("src"))
        if not src:
            raise ValueError(f"gallery record has no src: {record!r}")

        caption = _pick(record, "caption", "captionI18n", "caption_i18n")
        if isinstance(caption, Mapping):
            caption = {lang: _clean(caption.get(lang)) for lang in LANGS}
        elif not isinstance(caption, str):
            caption = None

        return cls(
            src=src,
            raw_source=_pick(record, "rawSource", "raw_source", "sanityImage"),
            orientation=_orientation(record.get("orientation")),
            asset_orientation=_orientation(
                _pick(record, "assetOrientation", "asset_orientation")),
            lock_orientation=parse_flag(_pick(record, "lockOrientation", "lock_orientation")),
            hotspot=Hotspot.from_value(record.get("hotspot")),
            crop=Crop.from_value(record.get("crop")),
            alt=_clean(record.get("alt")),
            caption=caption,
            country_slug=_clean(_pick(record, "countrySlug", "country_slug")) or "unknown",
        )

    def caption_for(self, lang: str = DEFAULT_LANG) -> Optional[str]:
        if isinstance(self.caption, str):
            return _clean(self.caption)
        if isinstance(self.caption, Mapping):
            other = "en" if lang == "it" else "it"
            return _clean(self.caption.get(lang)) or _clean(self.caption.get(other))
        return None
