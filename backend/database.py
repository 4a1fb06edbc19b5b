#!/usr/bin/env python3
"""
database.py — SQLite media library for the gallery.

Single source of truth for every photo the site can show: editorial
orientation, the orientation derived from the asset's pixels, the lock flag,
hotspot/crop metadata and bilingual alt/caption text. `get_gallery_images`
is the gallery query: it filters, orders and maps rows into GalleryImage
records ready for the layout engine.
"""
from __future__ import annotations

import json
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from gallery_types import (DEFAULT_LANG, LANDSCAPE, PANORAMA, PORTRAIT, SQUARE,
                           Crop, GalleryImage, Hotspot)
from image_urls import DEFAULT_QUALITY, STORE_WIDTH, build_image_url

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DB_PATH = Path(os.environ.get("GALLERY_DB_PATH", PROJECT_ROOT / "media" / "gallery.db"))

SCHEMA_VERSION = 1

PANORAMA_RATIO = 2.0  # width / height at or above this is a panorama

FALLBACK_ALT = {
    "it": "Immagine della galleria",
    "en": "Gallery image",
}

_SCHEMA_SQL = """
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- One row per media item (images and videos share the library)
CREATE TABLE IF NOT EXISTS media_items (
    id                  TEXT PRIMARY KEY,
    type                TEXT NOT NULL DEFAULT 'image',
    title               TEXT,
    asset_path          TEXT,
    width               INTEGER,
    height              INTEGER,
    orientation         TEXT,
    asset_orientation   TEXT,
    lock_orientation    INTEGER NOT NULL DEFAULT 0,
    hotspot_x           REAL,
    hotspot_y           REAL,
    hotspot_width       REAL,
    hotspot_height      REAL,
    crop_top            REAL,
    crop_bottom         REAL,
    crop_left           REAL,
    crop_right          REAL,
    alt                 TEXT,
    alt_i18n            TEXT,
    caption             TEXT,
    caption_i18n        TEXT,
    countries           TEXT,
    exclude_from_gallery INTEGER NOT NULL DEFAULT 0,
    video_url           TEXT,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_media_gallery
    ON media_items(type, exclude_from_gallery, created_at);
"""


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------

def get_connection(db_path: Optional[Path] = None) -> sqlite3.Connection:
    """Open (and initialize if needed) the database."""
    path = db_path or DB_PATH
    if str(path) != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    # Run schema creation (IF NOT EXISTS makes it safe to run every time)
    conn.executescript(_SCHEMA_SQL)
    cur = conn.execute("SELECT version FROM schema_version LIMIT 1")
    if cur.fetchone() is None:
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        conn.commit()
    return conn


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dump(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def parse_json_field(value: Optional[str]) -> Any:
    """Safely parse a JSON string field from the DB."""
    if not value:
        return None
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return None


def _clean(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    s = value.strip()
    return s or None


def orientation_for_dimensions(width: int, height: int) -> Optional[str]:
    if not width or not height:
        return None
    ratio = width / height
    if ratio >= PANORAMA_RATIO:
        return PANORAMA
    if width > height:
        return LANDSCAPE
    if height > width:
        return PORTRAIT
    return SQUARE


# ---------------------------------------------------------------------------
# Helpers — media items
# ---------------------------------------------------------------------------

def media_item_exists(conn: sqlite3.Connection, item_id: str) -> bool:
    row = conn.execute("SELECT 1 FROM media_items WHERE id = ?", (item_id,)).fetchone()
    return row is not None


def upsert_media_item(conn: sqlite3.Connection, *, item_id: str,
                      asset_path: Optional[str],
                      media_type: str = "image",
                      title: Optional[str] = None,
                      width: Optional[int] = None, height: Optional[int] = None,
                      orientation: Optional[str] = None,
                      lock_orientation: bool = False,
                      hotspot: Optional[Mapping[str, Any]] = None,
                      crop: Optional[Mapping[str, Any]] = None,
                      alt: Optional[str] = None,
                      alt_i18n: Optional[Mapping[str, str]] = None,
                      caption: Optional[str] = None,
                      caption_i18n: Optional[Mapping[str, str]] = None,
                      countries: Optional[List[str]] = None,
                      exclude_from_gallery: bool = False,
                      video_url: Optional[str] = None,
                      created_at: Optional[str] = None) -> None:
    hs = Hotspot.from_value(hotspot) or Hotspot()
    cr = Crop.from_value(crop) or Crop()
    asset_orientation = orientation_for_dimensions(width or 0, height or 0)
    now = _now()
    conn.execute("""
        INSERT INTO media_items (id, type, title, asset_path, width, height,
            orientation, asset_orientation, lock_orientation,
            hotspot_x, hotspot_y, hotspot_width, hotspot_height,
            crop_top, crop_bottom, crop_left, crop_right,
            alt, alt_i18n, caption, caption_i18n, countries,
            exclude_from_gallery, video_url, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            type=excluded.type, title=excluded.title, asset_path=excluded.asset_path,
            width=excluded.width, height=excluded.height,
            orientation=excluded.orientation, asset_orientation=excluded.asset_orientation,
            lock_orientation=excluded.lock_orientation,
            hotspot_x=excluded.hotspot_x, hotspot_y=excluded.hotspot_y,
            hotspot_width=excluded.hotspot_width, hotspot_height=excluded.hotspot_height,
            crop_top=excluded.crop_top, crop_bottom=excluded.crop_bottom,
            crop_left=excluded.crop_left, crop_right=excluded.crop_right,
            alt=excluded.alt, alt_i18n=excluded.alt_i18n,
            caption=excluded.caption, caption_i18n=excluded.caption_i18n,
            countries=excluded.countries,
            exclude_from_gallery=excluded.exclude_from_gallery,
            video_url=excluded.video_url, updated_at=excluded.updated_at
    """, (item_id, media_type, title, asset_path, width, height,
          orientation, asset_orientation, int(bool(lock_orientation)),
          hs.x, hs.y, hs.width, hs.height,
          cr.top, cr.bottom, cr.left, cr.right,
          alt, _dump(alt_i18n), caption, _dump(caption_i18n), _dump(countries),
          int(bool(exclude_from_gallery)), video_url, created_at or now, now))
    conn.commit()


def set_gallery_flags(conn: sqlite3.Connection, item_id: str, *,
                      exclude_from_gallery: Optional[bool] = None,
                      lock_orientation: Optional[bool] = None) -> bool:
    """Flip editorial switches on one item. Returns False if the item does not exist."""
    updates = []
    params: List[Any] = []
    if exclude_from_gallery is not None:
        updates.append("exclude_from_gallery = ?")
        params.append(int(exclude_from_gallery))
    if lock_orientation is not None:
        updates.append("lock_orientation = ?")
        params.append(int(lock_orientation))
    if not updates:
        return media_item_exists(conn, item_id)
    updates.append("updated_at = ?")
    params.extend([_now(), item_id])
    cur = conn.execute(
        f"UPDATE media_items SET {', '.join(updates)} WHERE id = ?", params)
    conn.commit()
    return cur.rowcount > 0


# ---------------------------------------------------------------------------
# Gallery query
# ---------------------------------------------------------------------------

def _resolve_alt(row: sqlite3.Row, lang: str) -> str:
    alt_i18n = parse_json_field(row["alt_i18n"]) or {}
    localized = _clean(alt_i18n.get(lang)) if isinstance(alt_i18n, dict) else None
    return (localized or _clean(row["alt"]) or _clean(row["title"])
            or FALLBACK_ALT.get(lang, FALLBACK_ALT[DEFAULT_LANG]))


def _resolve_caption(row: sqlite3.Row, lang: str) -> Optional[str]:
    caption_i18n = parse_json_field(row["caption_i18n"])
    if not isinstance(caption_i18n, dict):
        caption_i18n = {}
    other = "en" if lang == "it" else "it"
    return (_clean(caption_i18n.get(lang)) or _clean(row["caption"])
            or _clean(caption_i18n.get(other)))


def _row_to_image(row: sqlite3.Row, lang: str) -> Optional[GalleryImage]:
    raw_source = {"asset": row["asset_path"]}
    crop = Crop(top=row["crop_top"], bottom=row["crop_bottom"],
                left=row["crop_left"], right=row["crop_right"])
    src = build_image_url(raw_source, STORE_WIDTH, DEFAULT_QUALITY)
    if not src:
        return None

    hotspot = None
    if row["hotspot_x"] is not None or row["hotspot_y"] is not None:
        hotspot = Hotspot(x=row["hotspot_x"], y=row["hotspot_y"],
                          width=row["hotspot_width"], height=row["hotspot_height"])
    has_crop = any(v is not None for v in (crop.top, crop.bottom, crop.left, crop.right))
    countries = parse_json_field(row["countries"]) or []

    return GalleryImage.from_record({
        "src": src,
        "rawSource": raw_source,
        "orientation": row["orientation"],
        "assetOrientation": row["asset_orientation"],
        "lockOrientation": bool(row["lock_orientation"]),
        "hotspot": hotspot,
        "crop": crop if has_crop else None,
        "alt": _resolve_alt(row, lang),
        "caption": _resolve_caption(row, lang),
        "countrySlug": countries[0] if countries else "unknown",
    })


def get_gallery_images(conn: sqlite3.Connection, lang: str = DEFAULT_LANG) -> List[GalleryImage]:
    """Public gallery: images only, editorial exclusions filtered, newest first."""
    rows = conn.execute("""
        SELECT * FROM media_items
        WHERE type = 'image'
          AND asset_path IS NOT NULL AND asset_path != ''
          AND exclude_from_gallery != 1
        ORDER BY created_at DESC, id
    """).fetchall()
    images = []
    seen = set()
    for row in rows:
        img = _row_to_image(row, lang)
        # src is the viewer key; a duplicate asset would make links ambiguous
        if img is None or img.src in seen:
            continue
        seen.add(img.src)
        images.append(img)
    return images


def get_stats(conn: sqlite3.Connection) -> Dict[str, Any]:
    total = conn.execute("SELECT COUNT(*) as c FROM media_items").fetchone()["c"]
    images = conn.execute(
        "SELECT COUNT(*) as c FROM media_items WHERE type='image'").fetchone()["c"]
    excluded = conn.execute(
        "SELECT COUNT(*) as c FROM media_items WHERE exclude_from_gallery=1").fetchone()["c"]
    locked = conn.execute(
        "SELECT COUNT(*) as c FROM media_items WHERE lock_orientation=1").fetchone()["c"]
    by_orientation = {
        r["o"] or "unknown": r["c"] for r in conn.execute(
            "SELECT COALESCE(asset_orientation, orientation) as o, COUNT(*) as c "
            "FROM media_items WHERE type='image' GROUP BY o").fetchall()
    }
    return {
        "media_items": total,
        "images": images,
        "excluded": excluded,
        "locked": locked,
        "by_orientation": by_orientation,
    }
