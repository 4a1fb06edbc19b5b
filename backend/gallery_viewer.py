#!/usr/bin/env python3
"""
gallery_viewer.py — URL-driven lightbox state for the gallery.

The `img` query parameter is the single source of truth: opening an image
pushes a history entry carrying its src, closing replaces the entry without
it, and every URL change (our own, address-bar edits, back/forward) re-derives
the open index by looking the src up in the current image list. A stale or
unknown src simply means "closed".

Usage:
    history = BrowserHistory("/gallery?img=/destinations/china/ponte.jpg")
    with ViewerController(images, history) as viewer:
        viewer.state            # ViewerState(index=2)
        viewer.handle_key("ArrowRight")
"""
from __future__ import annotations

import logging
import operator
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from gallery_types import DEFAULT_LANG, GalleryImage
from image_urls import VIEWER_WIDTH, build_image_url
from scroll_lock import ScrollLock, ScrollLockHandle

log = logging.getLogger("gallery_viewer")

VIEWER_PARAM = "img"

KEY_CLOSE = "Escape"
KEY_PREV = "ArrowLeft"
KEY_NEXT = "ArrowRight"

Listener = Callable[[str], None]


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------

def image_param(url: str) -> Optional[str]:
    for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        if key == VIEWER_PARAM:
            return value or None
    return None


def url_with_image(url: str, src: str) -> str:
    parts = urlsplit(url)
    params = parse_qsl(parts.query, keep_blank_values=True)
    out = []
    placed = False
    for key, value in params:
        if key == VIEWER_PARAM:
            if not placed:
                out.append((key, src))
                placed = True
            continue
        out.append((key, value))
    if not placed:
        out.append((VIEWER_PARAM, src))
    return urlunsplit(parts._replace(query=urlencode(out)))


def url_without_image(url: str) -> str:
    parts = urlsplit(url)
    params = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
              if k != VIEWER_PARAM]
    return urlunsplit(parts._replace(query=urlencode(params)))


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

class BrowserHistory:
    """In-memory address bar + session history. Notifies on every URL change."""

    def __init__(self, url: str = "/gallery"):
        self._entries: List[str] = [url]
        self._index = 0
        self._listeners: List[Listener] = []

    @property
    def url(self) -> str:
        return self._entries[self._index]

    @property
    def length(self) -> int:
        return len(self._entries)

    def push(self, url: str) -> None:
        del self._entries[self._index + 1:]
        self._entries.append(url)
        self._index += 1
        self._notify()

    def replace(self, url: str) -> None:
        self._entries[self._index] = url
        self._notify()

    def navigate(self, url: str) -> None:
        """User typed a URL in the address bar."""
        self.push(url)

    def back(self) -> bool:
        if self._index == 0:
            return False
        self._index -= 1
        self._notify()
        return True

    def forward(self) -> bool:
        if self._index >= len(self._entries) - 1:
            return False
        self._index += 1
        self._notify()
        return True

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        url = self.url
        for listener in list(self._listeners):
            listener(url)


# ---------------------------------------------------------------------------
# Viewer
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ViewerState:
    index: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.index is not None


CLOSED = ViewerState()


class ViewerController:
    def __init__(self, images: Sequence[GalleryImage],
                 history: Optional[BrowserHistory] = None,
                 scroll_lock: Optional[ScrollLock] = None):
        self._images: List[GalleryImage] = list(images)
        self.history = history if history is not None else BrowserHistory()
        self.scroll_lock = scroll_lock if scroll_lock is not None else ScrollLock()
        self._state = CLOSED
        self._lock_handle: Optional[ScrollLockHandle] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    # -- lifecycle --

    @property
    def mounted(self) -> bool:
        return self._unsubscribe is not None

    def mount(self) -> "ViewerController":
        if self._unsubscribe is None:
            self._unsubscribe = self.history.subscribe(self._on_url_change)
        self.sync_from_url()
        return self

    def unmount(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._state = CLOSED
        self._release_lock()

    def __enter__(self) -> "ViewerController":
        return self.mount()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unmount()

    # -- state --

    @property
    def images(self) -> List[GalleryImage]:
        return list(self._images)

    @property
    def state(self) -> ViewerState:
        return self._state

    @property
    def open_index(self) -> Optional[int]:
        return self._state.index

    @property
    def is_open(self) -> bool:
        return self._state.is_open

    @property
    def current(self) -> Optional[GalleryImage]:
        if self._state.index is None:
            return None
        return self._images[self._state.index]

    def set_images(self, images: Iterable[GalleryImage]) -> None:
        self._images = list(images)
        self.sync_from_url()

    def sync_from_url(self) -> ViewerState:
        src = image_param(self.history.url)
        index = None
        if src is not None:
            index = next((i for i, img in enumerate(self._images) if img.src == src), None)
            if index is None:
                log.debug("Viewer link %r not in gallery (%d images); closed",
                          src, len(self._images))
        self._state = ViewerState(index)
        if self._state.is_open:
            if self._lock_handle is None:
                self._lock_handle = self.scroll_lock.acquire()
        else:
            self._release_lock()
        return self._state

    def _on_url_change(self, _url: str) -> None:
        self.sync_from_url()

    def _release_lock(self) -> None:
        if self._lock_handle is not None:
            self._lock_handle.release()
            self._lock_handle = None

    # -- transitions --

    def open(self, index: int) -> None:
        if isinstance(index, bool):
            return
        try:
            index = operator.index(index)  # numpy integers too
        except TypeError:
            return
        if not 0 <= index < len(self._images):
            log.debug("Ignoring open(%r) for a %d-image gallery", index, len(self._images))
            return
        src = self._images[index].src
        self.history.push(url_with_image(self.history.url, src))
        if not self.mounted:
            self.sync_from_url()

    def close(self) -> None:
        if not self.is_open:
            return
        self.history.replace(url_without_image(self.history.url))
        if not self.mounted:
            self.sync_from_url()

    def prev(self) -> None:
        if self._state.index is None:
            return
        self.open((self._state.index - 1 + len(self._images)) % len(self._images))

    def next(self) -> None:
        if self._state.index is None:
            return
        self.open((self._state.index + 1) % len(self._images))

    def handle_key(self, key: str) -> bool:
        if not self.is_open:
            return False
        if key == KEY_CLOSE:
            self.close()
        elif key == KEY_PREV:
            self.prev()
        elif key == KEY_NEXT:
            self.next()
        else:
            return False
        return True

    # -- view model --

    def view(self, lang: str = DEFAULT_LANG) -> Optional[Dict[str, object]]:
        img = self.current
        if img is None:
            return None
        index = self._state.index
        total = len(self._images)
        original_url = None
        if img.raw_source is not None:
            original_url = build_image_url(img.raw_source, VIEWER_WIDTH)
        return {
            "index": index,
            "total": total,
            "counter": f"{index + 1} / {total}",
            "src": img.src,
            "alt": img.alt,
            "caption": img.caption_for(lang),
            "originalUrl": original_url or img.src,
        }


# ---------------------------------------------------------------------------
# Per-image readiness
# ---------------------------------------------------------------------------

class ImageReadiness:
    """Explicit 'ready' flags fed by the renderer's load / error signals."""

    def __init__(self) -> None:
        self._ready: Dict[str, bool] = {}
        self._failed: Dict[str, bool] = {}
        self._attempts: Dict[str, int] = {}

    def mark_loaded(self, src: str) -> None:
        self._ready[src] = True
        self._failed.pop(src, None)

    def mark_failed(self, src: str) -> None:
        self._ready[src] = False
        self._failed[src] = True

    def retry(self, src: str) -> int:
        self._failed.pop(src, None)
        self._ready[src] = False
        self._attempts[src] = self._attempts.get(src, 0) + 1
        return self._attempts[src]

    def is_ready(self, src: str) -> bool:
        return self._ready.get(src, False)

    def has_failed(self, src: str) -> bool:
        return self._failed.get(src, False)

    def attempts(self, src: str) -> int:
        return self._attempts.get(src, 0)

    def reset(self, srcs: Iterable[str]) -> None:
        keep = set(srcs)
        for table in (self._ready, self._failed, self._attempts):
            for src in [s for s in table if s not in keep]:
                del table[src]
