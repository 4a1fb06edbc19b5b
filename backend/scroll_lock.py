#!/usr/bin/env python3
"""
scroll_lock.py — Reference-counted background scroll lock for the gallery viewer.

While any handle is held the document's body overflow is "hidden". The state
seen by the first acquirer is restored exactly when the last handle is
released, so overlapping open/close sequences (rapid prev/next, nested
overlays) can never leave scrolling disabled.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

log = logging.getLogger("scroll_lock")

LOCKED_OVERFLOW = "hidden"


@dataclass
class Document:
    """The bits of document state a scroll lock touches."""
    overflow: str = ""
    scroll_y: float = 0.0


class ScrollLockHandle:
    def __init__(self, lock: "ScrollLock"):
        self._lock = lock
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Release this handle. Releasing twice is a no-op."""
        if self._released:
            return
        self._released = True
        self._lock._release()

    def __enter__(self) -> "ScrollLockHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class ScrollLock:
    def __init__(self, document: Optional[Document] = None):
        self.document = document if document is not None else Document()
        self._count = 0
        self._saved_overflow: Optional[str] = None
        self._saved_scroll_y: float = 0.0

    @property
    def count(self) -> int:
        return self._count

    @property
    def held(self) -> bool:
        return self._count > 0

    def acquire(self) -> ScrollLockHandle:
        if self._count == 0:
            self._saved_overflow = self.document.overflow
            self._saved_scroll_y = self.document.scroll_y
            self.document.overflow = LOCKED_OVERFLOW
            log.debug("Scroll locked (saved overflow=%r, scroll_y=%s)",
                      self._saved_overflow, self._saved_scroll_y)
        self._count += 1
        return ScrollLockHandle(self)

    def _release(self) -> None:
        self._count -= 1
        if self._count == 0:
            self.document.overflow = self._saved_overflow or ""
            self.document.scroll_y = self._saved_scroll_y
            self._saved_overflow = None
            log.debug("Scroll unlocked (restored overflow=%r)", self.document.overflow)

    def status(self) -> dict:
        return {"held": self.held, "count": self._count,
                "overflow": self.document.overflow}
