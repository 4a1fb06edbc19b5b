#!/usr/bin/env python3
"""
serve_gallery.py — Local dev server for the gallery page.

Serves the static frontend and two API endpoints backed by the media
library, so the page can be exercised without a build:

    GET /api/gallery?viewport=mobile&lang=en   layout for one viewport class
    GET /api/gallery?width=390                 viewport picked by breakpoint
    GET /api/viewer?img=<src>                  viewer state for a shared link

Usage:
    python3 serve_gallery.py          # http://localhost:3000
    python3 serve_gallery.py --port 8080 --db media/test.db
"""
from __future__ import annotations

import argparse
import json
import logging
import mimetypes
from functools import partial
from http.server import HTTPServer, SimpleHTTPRequestHandler
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import parse_qs, urlsplit

import database as db
from export_gallery import build_gallery_payload
from gallery_layout import DESKTOP, MOBILE, VIEWPORTS, viewport_for_width
from gallery_types import DEFAULT_LANG, LANGS, GalleryImage
from gallery_viewer import BrowserHistory, ViewerController

log = logging.getLogger("serve_gallery")

PROJECT_ROOT = db.PROJECT_ROOT
FRONTEND_DIR = PROJECT_ROOT / "frontend" / "gallery"

ImageLoader = Callable[[str], Sequence[GalleryImage]]


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------

def _first(query: Dict[str, List[str]], key: str) -> Optional[str]:
    values = query.get(key)
    return values[0] if values else None


def _request_lang(query: Dict[str, List[str]]) -> str:
    lang = _first(query, "lang")
    return lang if lang in LANGS else DEFAULT_LANG


def _request_viewport(query: Dict[str, List[str]]) -> str:
    viewport = _first(query, "viewport")
    if viewport in VIEWPORTS:
        return viewport
    width = _first(query, "width")
    if width:
        try:
            return viewport_for_width(float(width))
        except ValueError:
            log.debug("Ignoring non-numeric width %r", width)
    return DESKTOP


def gallery_response(images: Sequence[GalleryImage], viewport: str, lang: str) -> Dict[str, Any]:
    payload = build_gallery_payload(images, lang)
    body: Dict[str, Any] = {
        "viewport": viewport,
        "count": payload["count"],
        "empty": payload["empty"],
    }
    if viewport == MOBILE:
        body.update(payload["mobile"])
    else:
        body["slots"] = payload["desktop"]
    return body


def viewer_response(images: Sequence[GalleryImage], query_string: str, lang: str) -> Dict[str, Any]:
    # A fresh controller per request: state comes from the URL alone.
    url = f"/gallery?{query_string}" if query_string else "/gallery"
    with ViewerController(images, BrowserHistory(url)) as viewer:
        return {
            "state": "open" if viewer.is_open else "closed",
            "index": viewer.open_index,
            "total": len(images),
            "view": viewer.view(lang),
        }


def api_response(path: str, load_images: ImageLoader) -> Tuple[int, Dict[str, Any]]:
    parts = urlsplit(path)
    query = parse_qs(parts.query, keep_blank_values=True)
    lang = _request_lang(query)

    if parts.path == "/api/gallery":
        return 200, gallery_response(load_images(lang), _request_viewport(query), lang)
    if parts.path == "/api/viewer":
        return 200, viewer_response(load_images(lang), parts.query, lang)
    return 404, {"error": "not found"}


def database_loader(db_path: Optional[Path] = None) -> ImageLoader:
    def load(lang: str) -> List[GalleryImage]:
        conn = db.get_connection(db_path)
        try:
            return db.get_gallery_images(conn, lang)
        finally:
            conn.close()
    return load


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

class GalleryHandler(SimpleHTTPRequestHandler):
    def __init__(self, *args, load_images: ImageLoader, **kwargs):
        self.load_images = load_images
        super().__init__(*args, directory=str(FRONTEND_DIR), **kwargs)

    def _json_response(self, status: int, data: Dict[str, Any]) -> None:
        body = json.dumps(data, ensure_ascii=False).encode()
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        # ── API routes ──
        if self.path.startswith("/api/"):
            status, payload = api_response(self.path, self.load_images)
            self._json_response(status, payload)
            return

        # /gallery and /en/gallery are client-routed; the viewer reads ?img= itself
        route = urlsplit(self.path).path.rstrip("/")
        if route in ("/gallery", "/en/gallery"):
            self._serve_file(FRONTEND_DIR / "index.html")
            return

        super().do_GET()

    def _serve_file(self, file_path: Path) -> None:
        if not file_path.is_file():
            self.send_error(404)
            return
        mime, _ = mimetypes.guess_type(str(file_path))
        data = file_path.read_bytes()
        self.send_response(200)
        self.send_header("Content-Type", mime or "application/octet-stream")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def log_message(self, format, *args):
        # Quieter logging: skip successful asset loads
        if len(args) >= 2 and args[1] == "200" and "/api/" not in str(args[0]):
            return
        log.info("%s - %s", self.address_string(), format % args)


def main() -> None:
    parser = argparse.ArgumentParser(description="Gallery dev server")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--db", type=Path, default=None, help=f"Database (default: {db.DB_PATH})")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s  %(levelname)-7s  %(message)s",
    )

    handler = partial(GalleryHandler, load_images=database_loader(args.db))
    server = HTTPServer(("0.0.0.0", args.port), handler)
    print(f"Gallery — http://localhost:{args.port}/gallery")
    print(f"  Web root: {FRONTEND_DIR}")
    print(f"  Database: {args.db or db.DB_PATH}")
    print()
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nShutting down.")
        server.shutdown()


if __name__ == "__main__":
    main()
