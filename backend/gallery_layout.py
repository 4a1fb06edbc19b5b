#!/usr/bin/env python3
"""
gallery_layout.py — Deterministic aspect-ratio layout for the masonry gallery.

Every "random-looking" choice is seeded from a hash of the image src, so the
same gallery renders identically across reloads, server and client, and test
runs. Two paths:

    desktop  column-flow masonry, each image remixed within an
             orientation-aware distribution (lock flag wins)
    mobile   3 fixed columns filled greedily by running height, aspect from a
             repeating pattern + jitter, always clamped into the image's
             focal-safety set

Usage:
    from gallery_layout import compute_layout, DESKTOP, MOBILE
    slots = compute_layout(images, MOBILE)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from gallery_types import LANDSCAPE, PANORAMA, PORTRAIT, SQUARE, GalleryImage

log = logging.getLogger("gallery_layout")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DESKTOP = "desktop"
MOBILE = "mobile"
VIEWPORTS = (DESKTOP, MOBILE)

MOBILE_BREAKPOINT = 768  # px; narrower viewports get the packed columns
MOBILE_COLUMNS = 3
COLUMN_GAP = 0.08  # height units added per placed tile

# Desktop remix ignores focal safety (matches the live site). Flip to clamp
# desktop picks into the same safety set the mobile path uses.
CLAMP_DESKTOP_TO_SAFETY = False

HASH_SEED = 5381

# Aspect classes
SQUARE_ASPECT = "1:1"
THREE_FOUR = "3:4"
FOUR_FIVE = "4:5"
VIDEO = "16:9"
ULTRAWIDE = "21:9"

ASPECT_RATIOS: Dict[str, float] = {
    SQUARE_ASPECT: 1.0,
    THREE_FOUR: 3 / 4,
    FOUR_FIVE: 4 / 5,
    VIDEO: 16 / 9,
    ULTRAWIDE: 21 / 9,
}

ASPECT_CSS_CLASSES: Dict[str, str] = {
    SQUARE_ASPECT: "aspect-square",
    THREE_FOUR: "aspect-[3/4]",
    FOUR_FIVE: "aspect-[4/5]",
    VIDEO: "aspect-video",
    ULTRAWIDE: "aspect-[21/9]",
}

# Weighted bags: repetition is the weight, picks are modulo-indexed.
_FRAGILE_ALLOWED: Dict[Optional[str], Tuple[str, ...]] = {
    PANORAMA: (VIDEO, VIDEO, ULTRAWIDE),
    PORTRAIT: (FOUR_FIVE, FOUR_FIVE, THREE_FOUR, THREE_FOUR, SQUARE_ASPECT),
    SQUARE: (SQUARE_ASPECT, SQUARE_ASPECT, THREE_FOUR),
    LANDSCAPE: (VIDEO, VIDEO, SQUARE_ASPECT, SQUARE_ASPECT, THREE_FOUR),
}

_SAFE_ALLOWED: Dict[Optional[str], Tuple[str, ...]] = {
    PORTRAIT: (FOUR_FIVE, FOUR_FIVE, THREE_FOUR, THREE_FOUR,
               SQUARE_ASPECT, SQUARE_ASPECT, VIDEO),
    SQUARE: (SQUARE_ASPECT, SQUARE_ASPECT, SQUARE_ASPECT, THREE_FOUR, FOUR_FIVE),
    PANORAMA: (VIDEO, VIDEO, VIDEO, ULTRAWIDE, SQUARE_ASPECT),
    LANDSCAPE: (VIDEO, VIDEO, SQUARE_ASPECT, SQUARE_ASPECT, THREE_FOUR, FOUR_FIVE),
}

_SIDE_PATTERN = (SQUARE_ASPECT, THREE_FOUR, SQUARE_ASPECT, FOUR_FIVE, VIDEO, THREE_FOUR)
_MIDDLE_PATTERN = (SQUARE_ASPECT, THREE_FOUR, SQUARE_ASPECT, FOUR_FIVE,
                   THREE_FOUR, SQUARE_ASPECT, VIDEO)

EDGE_MARGIN = 0.12
BIG_SUBJECT = 0.72
HEAVY_CROP = 0.35


# ---------------------------------------------------------------------------
# Stable hashing
# ---------------------------------------------------------------------------

def hash_string(value: str) -> int:
    """djb2-xor over UTF-16 code units, unsigned 32-bit.

    Matches the browser implementation bit for bit, including astral
    characters (which JS sees as surrogate pairs).
    """
    h = HASH_SEED
    data = value.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = ((h * 33) ^ unit) & 0xFFFFFFFF
    return h


# ---------------------------------------------------------------------------
# Orientation
# ---------------------------------------------------------------------------

def base_orientation(img: GalleryImage) -> Optional[str]:
    return img.asset_orientation or img.orientation


def canonical_aspect(orientation: Optional[str]) -> str:
    if orientation == PORTRAIT:
        return THREE_FOUR
    if orientation == SQUARE:
        return SQUARE_ASPECT
    if orientation == PANORAMA:
        return ULTRAWIDE
    return VIDEO


def original_aspect_for(img: GalleryImage) -> str:
    return canonical_aspect(base_orientation(img))


def aspect_ratio(aspect: str) -> float:
    return ASPECT_RATIOS.get(aspect, ASPECT_RATIOS[VIDEO])


# ---------------------------------------------------------------------------
# Focal safety
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RemixSafety:
    fragile: bool
    allowed_aspects: Tuple[str, ...]


def is_fragile(img: GalleryImage) -> bool:
    hs = img.hotspot
    hx = hs.x if hs else None
    hy = hs.y if hs else None
    hw = hs.width if hs else None
    hh = hs.height if hs else None

    has_hotspot = None not in (hx, hy, hw, hh)
    near_edge = (hx is not None and hy is not None and
                 (hx < EDGE_MARGIN or hx > 1 - EDGE_MARGIN or
                  hy < EDGE_MARGIN or hy > 1 - EDGE_MARGIN))
    big_subject = (hw is not None and hh is not None and
                   (hw > BIG_SUBJECT or hh > BIG_SUBJECT))

    crop = img.crop
    ct = (crop.top if crop else None) or 0.0
    cb = (crop.bottom if crop else None) or 0.0
    cl = (crop.left if crop else None) or 0.0
    cr = (crop.right if crop else None) or 0.0
    heavy_crop = cl + cr > HEAVY_CROP or ct + cb > HEAVY_CROP

    return (has_hotspot and (near_edge or big_subject)) or heavy_crop


def remix_safety(img: GalleryImage) -> RemixSafety:
    fragile = is_fragile(img)
    base = base_orientation(img)
    table = _FRAGILE_ALLOWED if fragile else _SAFE_ALLOWED
    return RemixSafety(fragile=fragile, allowed_aspects=table.get(base, table[LANDSCAPE]))


def pick_from_allowed(seed: int, allowed: Sequence[str]) -> str:
    if not allowed:
        return VIDEO
    return allowed[seed % len(allowed)]


# ---------------------------------------------------------------------------
# Desktop remix
# ---------------------------------------------------------------------------

def pick_remixed_aspect_desktop(img: GalleryImage, clamp: Optional[bool] = None) -> str:
    if img.lock_orientation:
        return original_aspect_for(img)

    base = base_orientation(img)
    seed = hash_string(img.src)
    r = seed % 100

    if r < 30:
        chosen = SQUARE_ASPECT
    elif r < 55:
        chosen = THREE_FOUR
    elif r < 70:
        chosen = FOUR_FIVE
    else:
        chosen = VIDEO

    if base == PANORAMA and r < 10:
        chosen = ULTRAWIDE

    if base in (LANDSCAPE, PANORAMA):
        if chosen == FOUR_FIVE:
            chosen = VIDEO
        if chosen == THREE_FOUR and r % 2 == 0:
            chosen = SQUARE_ASPECT
        if chosen == ULTRAWIDE and base != PANORAMA:
            chosen = VIDEO

    if base == PORTRAIT:
        if chosen == VIDEO:
            chosen = SQUARE_ASPECT if r % 2 == 0 else THREE_FOUR
        if chosen == ULTRAWIDE:
            chosen = SQUARE_ASPECT

    if base == SQUARE:
        chosen = THREE_FOUR if r < 20 else SQUARE_ASPECT

    if clamp is None:
        clamp = CLAMP_DESKTOP_TO_SAFETY
    if clamp:
        allowed = remix_safety(img).allowed_aspects
        if chosen not in allowed:
            chosen = pick_from_allowed(seed, allowed)

    return chosen


# ---------------------------------------------------------------------------
# Mobile packing
# ---------------------------------------------------------------------------

def pick_mobile_forced_aspect(img: GalleryImage, global_index: int, column_index: int) -> str:
    if img.lock_orientation:
        return original_aspect_for(img)

    seed = hash_string(img.src)
    allowed = remix_safety(img).allowed_aspects

    pattern = _MIDDLE_PATTERN if column_index == 1 else _SIDE_PATTERN
    column_offset = (seed + column_index * 11) % len(pattern)
    chosen = pattern[(global_index + column_offset) % len(pattern)]

    jitter = (seed + global_index * 18 + column_index * 36) % 100
    if jitter < 28:
        chosen = SQUARE_ASPECT
    elif jitter < 46:
        chosen = THREE_FOUR
    elif jitter < 56:
        chosen = FOUR_FIVE

    if chosen in allowed:
        return chosen
    return pick_from_allowed(seed + global_index + column_index * 17, allowed)


@dataclass
class MobilePacking:
    columns: List[List[int]]       # image indices per column, in placement order
    aspects: List[str]             # per image, input order
    column_of: List[int]           # per image, input order
    heights: List[float]           # running height estimate per column


def pack_mobile_columns(images: Sequence[GalleryImage],
                        columns: int = MOBILE_COLUMNS) -> MobilePacking:
    """Greedy single pass: each image extends the currently shortest column."""
    heights = np.zeros(columns, dtype=np.float64)
    placed: List[List[int]] = [[] for _ in range(columns)]
    aspects: List[str] = []
    column_of: List[int] = []

    for index, img in enumerate(images):
        col = int(np.argmin(heights))  # first minimum -> lowest index wins ties
        aspect = pick_mobile_forced_aspect(img, index, col)
        placed[col].append(index)
        aspects.append(aspect)
        column_of.append(col)
        heights[col] += 1 / aspect_ratio(aspect) + COLUMN_GAP

    return MobilePacking(columns=placed, aspects=aspects,
                         column_of=column_of, heights=heights.tolist())


# ---------------------------------------------------------------------------
# Object position
# ---------------------------------------------------------------------------

def _css_number(value: float) -> str:
    """Number.prototype.toString: fixed-point from 1e-6 up, exponent below."""
    if value.is_integer():
        return str(int(value))
    text = repr(value)
    if "e" not in text:
        return text
    if abs(value) >= 1e-6:
        return format(Decimal(text), "f")
    mantissa, exponent = text.split("e")
    return f"{mantissa}e{int(exponent)}"


def object_position(img: GalleryImage) -> str:
    hs = img.hotspot
    if hs is not None and hs.x is not None and hs.y is not None:
        px = max(0.0, min(1.0, hs.x)) * 100
        py = max(0.0, min(1.0, hs.y)) * 100
        return f"{_css_number(px)}% {_css_number(py)}%"
    return "50% 50%"


# ---------------------------------------------------------------------------
# Layout entry point
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LayoutSlot:
    index: int
    src: str
    aspect: str
    object_position: str
    column: Optional[int] = None

    @property
    def css_class(self) -> str:
        return ASPECT_CSS_CLASSES.get(self.aspect, ASPECT_CSS_CLASSES[VIDEO])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "src": self.src,
            "aspectClass": self.aspect,
            "cssClass": self.css_class,
            "objectPosition": self.object_position,
            "columnIndex": self.column,
        }


def viewport_for_width(width_px: float) -> str:
    return MOBILE if width_px < MOBILE_BREAKPOINT else DESKTOP


@lru_cache(maxsize=64)
def _layout(images: Tuple[GalleryImage, ...], viewport: str,
            clamp_desktop: bool) -> Tuple[LayoutSlot, ...]:
    if viewport == MOBILE:
        packing = pack_mobile_columns(images)
        return tuple(
            LayoutSlot(index=i, src=img.src, aspect=packing.aspects[i],
                       object_position=object_position(img),
                       column=packing.column_of[i])
            for i, img in enumerate(images)
        )
    return tuple(
        LayoutSlot(index=i, src=img.src,
                   aspect=pick_remixed_aspect_desktop(img, clamp_desktop),
                   object_position=object_position(img))
        for i, img in enumerate(images)
    )


def compute_layout(images: Sequence[GalleryImage], viewport: str = DESKTOP) -> List[LayoutSlot]:
    """Per-image aspect class + object position (+ column on mobile), in input order."""
    if viewport not in VIEWPORTS:
        log.debug("Unknown viewport %r, using desktop layout", viewport)
        viewport = DESKTOP
    if not images:
        return []
    return list(_layout(tuple(images), viewport, CLAMP_DESKTOP_TO_SAFETY))


def clear_layout_cache() -> None:
    _layout.cache_clear()
