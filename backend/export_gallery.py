#!/usr/bin/env python3
"""
export_gallery.py — Export the gallery layout to JSON for the frontend.

Runs the gallery query, lays the images out for both viewport classes and
writes one file the static site reads at build time. Each tile carries the
aspect class, the object-position that keeps its hotspot in frame, the CDN
URL at a width suited to that aspect, and (mobile only) its column.

Outputs:
    frontend/gallery/data/gallery.json

Usage:
    python3 export_gallery.py              # Export (Italian labels)
    python3 export_gallery.py --lang en    # English alt/caption resolution
    python3 export_gallery.py --pretty     # Pretty-printed JSON
"""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import database as db
from gallery_layout import DESKTOP, MOBILE, compute_layout, pack_mobile_columns
from gallery_types import DEFAULT_LANG, LANGS, GalleryImage
from image_urls import build_image_url, requested_width

PROJECT_ROOT = db.PROJECT_ROOT
DATA_DIR = PROJECT_ROOT / "frontend" / "gallery" / "data"
OUTPUT_PATH = DATA_DIR / "gallery.json"

EMPTY_LABELS = {
    "it": "Nessuna immagine disponibile.",
    "en": "No images available.",
}

ALT_FALLBACK = {
    "it": "Foto viaggio",
    "en": "Travel photo",
}


# First tiles in reading order load eagerly with high fetch priority.
PRIORITY_COUNTS = {
    DESKTOP: 3,
    MOBILE: 12,
}


def _tile(slot, img: GalleryImage, viewport: str, lang: str) -> Dict[str, Any]:
    tile = slot.to_dict()
    url = None
    if img.raw_source is not None:
        url = build_image_url(img.raw_source, requested_width(slot.aspect, viewport),
                              crop=img.crop)
    tile["url"] = url or img.src
    tile["alt"] = img.alt or ALT_FALLBACK.get(lang, ALT_FALLBACK[DEFAULT_LANG])
    tile["caption"] = img.caption_for(lang)

    priority = slot.index < PRIORITY_COUNTS[viewport]
    tile["priority"] = priority
    tile["fetchPriority"] = "high" if priority else "auto"
    # mobile tiles always load eagerly
    tile["loading"] = "eager" if priority or viewport == MOBILE else "lazy"
    return tile


def build_gallery_payload(images: Sequence[GalleryImage], lang: str = DEFAULT_LANG) -> Dict[str, Any]:
    if not images:
        return {
            "count": 0,
            "empty": EMPTY_LABELS.get(lang, EMPTY_LABELS[DEFAULT_LANG]),
            "desktop": [],
            "mobile": {"columns": [], "heights": [], "slots": []},
        }

    desktop = [_tile(slot, images[slot.index], DESKTOP, lang)
               for slot in compute_layout(images, DESKTOP)]
    mobile_slots = [_tile(slot, images[slot.index], MOBILE, lang)
                    for slot in compute_layout(images, MOBILE)]
    packing = pack_mobile_columns(images)

    return {
        "count": len(images),
        "empty": None,
        "desktop": desktop,
        "mobile": {
            "columns": packing.columns,
            "heights": [round(h, 4) for h in packing.heights],
            "slots": mobile_slots,
        },
    }


def export(lang: str = DEFAULT_LANG, pretty: bool = False,
           db_path: Optional[Path] = None, output_path: Path = OUTPUT_PATH) -> Dict[str, Any]:
    conn = db.get_connection(db_path)
    images = db.get_gallery_images(conn, lang)
    conn.close()

    payload = build_gallery_payload(images, lang)

    print(f"Exported {payload['count']} gallery images ({lang})")
    if payload["count"]:
        locked = sum(1 for img in images if img.lock_orientation)
        print(f"  Locked orientation: {locked}")
        print(f"  Mobile column heights: {payload['mobile']['heights']}")
    else:
        print(f"  Empty gallery: {payload['empty']}")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        if pretty:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        else:
            json.dump(payload, f, separators=(",", ":"), ensure_ascii=False)

    size_kb = output_path.stat().st_size / 1024
    print(f"Written to {output_path} ({size_kb:.0f} KB)")
    return payload


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Export gallery layout to JSON")
    parser.add_argument("--lang", choices=LANGS, default=DEFAULT_LANG)
    parser.add_argument("--db", type=Path, default=None, help=f"Database (default: {db.DB_PATH})")
    parser.add_argument("--output", type=Path, default=OUTPUT_PATH)
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s  %(levelname)-7s  %(message)s",
    )
    export(lang=args.lang, pretty=args.pretty, db_path=args.db, output_path=args.output)


if __name__ == "__main__":
    main()
