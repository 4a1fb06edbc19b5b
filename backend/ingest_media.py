#!/usr/bin/env python3
"""
ingest_media.py — Register a folder of photos in the gallery media library.

Reads pixel dimensions with Pillow (honouring EXIF rotation) so every item
gets an asset orientation, merges editorial fields from an optional sidecar
JSON next to each photo, and upserts into the media database.

Sidecar (photo.jpg -> photo.json), every key optional:
    {"orientation": "portrait", "lockOrientation": true,
     "hotspot": {"x": 0.5, "y": 0.3, "width": 0.4, "height": 0.5},
     "crop": {"top": 0.1, "bottom": 0.0, "left": 0.0, "right": 0.0},
     "alt": "...", "altI18n": {"it": "...", "en": "..."},
     "captionI18n": {"it": "...", "en": "..."},
     "countries": ["guatemala"], "excludeFromGallery": false}

Usage:
    python ingest_media.py photos/                 # Register everything under photos/
    python ingest_media.py photos/ --db test.db    # Use another database
    python ingest_media.py photos/ --test 10       # Only the first 10 photos
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from PIL import Image, UnidentifiedImageError
from tqdm import tqdm

import database as db
from gallery_types import parse_flag

log = logging.getLogger("ingest_media")

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}

UUID_NAMESPACE = uuid.UUID("6ba7b810-9dad-11d1-80b4-00c04fd430c8")

EXIF_ORIENTATION_TAG = 0x0112
ROTATED_EXIF = {5, 6, 7, 8}  # stored sideways; displayed width/height are swapped


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def generate_id(relative_path: str) -> str:
    return str(uuid.uuid5(UUID_NAMESPACE, relative_path))


def collect_photos(root: Path) -> List[Tuple[str, Path]]:
    """Walk root and return (relative_path, absolute_path) for every photo."""
    photos = []
    for dirpath, _dirs, files in os.walk(root):
        for fname in files:
            if Path(fname).suffix.lower() in IMAGE_EXTENSIONS:
                abs_path = Path(dirpath) / fname
                rel_path = abs_path.relative_to(root).as_posix()
                photos.append((rel_path, abs_path))
    photos.sort(key=lambda x: x[0])
    return photos


def display_dimensions(path: Path) -> Tuple[int, int]:
    """Width/height as displayed, i.e. after EXIF rotation."""
    with Image.open(path) as img:
        width, height = img.size
        orientation = img.getexif().get(EXIF_ORIENTATION_TAG, 1)
    if orientation in ROTATED_EXIF:
        return height, width
    return width, height


def load_sidecar(path: Path) -> Dict[str, Any]:
    sidecar = path.with_suffix(".json")
    if not sidecar.exists():
        return {}
    try:
        data = json.loads(sidecar.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        log.warning("Ignoring unreadable sidecar %s: %s", sidecar, e)
        return {}
    return data if isinstance(data, dict) else {}


def country_from_path(relative_path: str) -> Optional[str]:
    parts = Path(relative_path).parts
    return parts[0] if len(parts) > 1 else None


def _text(value: Any) -> Optional[str]:
    # sidecars are hand-edited; anything but a non-blank string is dropped
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


# ---------------------------------------------------------------------------
# Ingest
# ---------------------------------------------------------------------------

def ingest_photo(conn, rel_path: str, abs_path: Path) -> str:
    width, height = display_dimensions(abs_path)
    meta = load_sidecar(abs_path)

    countries = meta.get("countries")
    if not isinstance(countries, list):
        country = country_from_path(rel_path)
        countries = [country] if country else None

    item_id = generate_id(rel_path)
    db.upsert_media_item(
        conn,
        item_id=item_id,
        asset_path=rel_path,
        title=_text(meta.get("title")) or abs_path.stem,
        width=width,
        height=height,
        orientation=_text(meta.get("orientation")),
        lock_orientation=parse_flag(meta.get("lockOrientation")),
        hotspot=meta.get("hotspot"),
        crop=meta.get("crop"),
        alt=_text(meta.get("alt")),
        alt_i18n=meta.get("altI18n"),
        caption=_text(meta.get("caption")),
        caption_i18n=meta.get("captionI18n"),
        countries=countries,
        exclude_from_gallery=parse_flag(meta.get("excludeFromGallery")),
        created_at=_text(meta.get("createdAt")),
    )
    return item_id


def ingest(root: Path, db_path: Optional[Path] = None, limit: int = 0) -> Dict[str, int]:
    conn = db.get_connection(db_path)
    photos = collect_photos(root)
    if limit:
        photos = photos[:limit]

    ok = 0
    failed = 0
    for rel_path, abs_path in tqdm(photos, desc="ingest", unit="img"):
        try:
            ingest_photo(conn, rel_path, abs_path)
            ok += 1
        except (OSError, UnidentifiedImageError, Image.DecompressionBombError,
                ValueError, OverflowError) as e:
            failed += 1
            log.warning("SKIP %s: %s", rel_path, e)

    stats = db.get_stats(conn)
    conn.close()
    return {"found": len(photos), "ingested": ok, "failed": failed,
            "library": stats["media_items"]}


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Register photos in the gallery library")
    parser.add_argument("root", type=Path, help="Folder of photos (one subfolder per country)")
    parser.add_argument("--db", type=Path, default=None, help=f"Database (default: {db.DB_PATH})")
    parser.add_argument("--test", type=int, metavar="N", default=0,
                        help="Ingest only N photos")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s  %(levelname)-7s  %(message)s",
    )

    if not args.root.is_dir():
        print(f"Not a directory: {args.root}", file=sys.stderr)
        return 1

    result = ingest(args.root, args.db, args.test)
    print(f"Found:    {result['found']}")
    print(f"Ingested: {result['ingested']}")
    print(f"Failed:   {result['failed']}")
    print(f"Library:  {result['library']} media items")
    return 0


if __name__ == "__main__":
    sys.exit(main())
