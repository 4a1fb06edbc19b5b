"""
Tests for the URL-driven gallery viewer.

Covers:
- img query param helpers
- in-memory browser history (push / replace / back / forward / listeners)
- open / close / prev / next / keyboard transitions
- resuming from a shared link, stale links, external navigation
- scroll lock lifecycle
- view model and per-image readiness
"""

import numpy as np
import pytest

from gallery_layout import pack_mobile_columns
from gallery_types import GalleryImage
from gallery_viewer import (BrowserHistory, ImageReadiness, ViewerController, ViewerState,
                            image_param, url_with_image, url_without_image)
from image_urls import IMAGE_CDN_BASE
from scroll_lock import Document, ScrollLock


@pytest.fixture
def document():
    return Document(overflow="auto", scroll_y=640.0)


@pytest.fixture
def viewer(five_images, document):
    controller = ViewerController(five_images, BrowserHistory("/gallery"), ScrollLock(document))
    controller.mount()
    yield controller
    controller.unmount()


# =============================================================================
# URL helpers
# =============================================================================

class TestUrlHelpers:

    def test_round_trip_src(self):
        src = "/destinations/china/ponte guangxi.jpg?w=1600&q=80"
        assert image_param(url_with_image("/gallery", src)) == src

    def test_missing_and_empty_param(self):
        assert image_param("/gallery") is None
        assert image_param("/gallery?img=") is None

    def test_other_params_preserved(self):
        url = url_with_image("/gallery?lang=en&sort=new", "/a.jpg")
        assert url.startswith("/gallery?lang=en&sort=new&img=")
        assert url_without_image(url) == "/gallery?lang=en&sort=new"

    def test_existing_param_replaced_in_place(self):
        url = url_with_image("/gallery?img=old&lang=en", "new")
        assert url == "/gallery?img=new&lang=en"

    def test_without_image_on_bare_path(self):
        assert url_without_image("/gallery?img=x") == "/gallery"


# =============================================================================
# History
# =============================================================================

class TestBrowserHistory:

    def test_push_and_back_forward(self):
        history = BrowserHistory("/gallery")
        history.push("/gallery?img=a")
        assert history.length == 2
        assert history.back()
        assert history.url == "/gallery"
        assert not history.back()
        assert history.forward()
        assert history.url == "/gallery?img=a"
        assert not history.forward()

    def test_push_truncates_forward_entries(self):
        history = BrowserHistory("/")
        history.push("/1")
        history.push("/2")
        history.back()
        history.push("/3")
        assert history.length == 3
        assert not history.forward()

    def test_replace_keeps_length(self):
        history = BrowserHistory("/gallery?img=a")
        history.replace("/gallery")
        assert history.length == 1
        assert history.url == "/gallery"

    def test_listeners_notified_and_unsubscribed(self):
        history = BrowserHistory("/")
        seen = []
        unsubscribe = history.subscribe(seen.append)
        history.push("/a")
        history.replace("/b")
        unsubscribe()
        history.push("/c")
        assert seen == ["/a", "/b"]


# =============================================================================
# Viewer transitions
# =============================================================================

class TestViewerController:

    def test_starts_closed(self, viewer):
        assert viewer.state == ViewerState()
        assert not viewer.is_open
        assert viewer.current is None
        assert viewer.view() is None

    def test_open_pushes_entry(self, viewer, five_images):
        viewer.open(2)
        assert viewer.open_index == 2
        assert viewer.history.length == 2
        assert image_param(viewer.history.url) == five_images[2].src

    def test_close_replaces_entry(self, viewer):
        viewer.open(1)
        viewer.close()
        assert not viewer.is_open
        assert viewer.history.length == 2
        assert image_param(viewer.history.url) is None

    def test_close_when_closed_is_noop(self, viewer):
        viewer.close()
        assert viewer.history.length == 1
        assert viewer.history.url == "/gallery"

    @pytest.mark.parametrize("index", [-1, 5, 99, True, "2", 1.0, None])
    def test_invalid_open_ignored(self, viewer, index):
        viewer.open(index)
        assert not viewer.is_open
        assert viewer.history.length == 1

    @pytest.mark.parametrize("index", [np.int64(1), np.int32(1), np.uint8(1)])
    def test_open_accepts_numpy_integers(self, viewer, five_images, index):
        viewer.open(index)
        assert viewer.open_index == 1
        assert image_param(viewer.history.url) == five_images[1].src

    def test_open_with_packed_column_index(self, viewer, five_images):
        packing = pack_mobile_columns(five_images)
        first_in_middle = np.asarray(packing.columns[1])[0]
        viewer.open(first_in_middle)
        assert viewer.open_index == packing.columns[1][0]

    def test_prev_wraps_to_last(self, viewer):
        viewer.open(0)
        viewer.prev()
        assert viewer.open_index == 4

    def test_next_wraps_to_first(self, viewer):
        viewer.open(4)
        viewer.next()
        assert viewer.open_index == 0

    def test_prev_next_when_closed(self, viewer):
        viewer.prev()
        viewer.next()
        assert not viewer.is_open
        assert viewer.history.length == 1

    def test_keyboard(self, viewer):
        assert not viewer.handle_key("ArrowRight")
        viewer.open(3)
        assert viewer.handle_key("ArrowRight")
        assert viewer.open_index == 4
        assert viewer.handle_key("ArrowLeft")
        assert viewer.open_index == 3
        assert not viewer.handle_key("Enter")
        assert viewer.open_index == 3
        assert viewer.handle_key("Escape")
        assert not viewer.is_open

    def test_back_button_walks_history(self, viewer):
        viewer.open(1)
        viewer.next()
        viewer.history.back()
        assert viewer.open_index == 1
        viewer.history.back()
        assert not viewer.is_open
        viewer.history.forward()
        assert viewer.open_index == 1

    def test_address_bar_navigation(self, viewer, five_images):
        viewer.history.navigate(url_with_image("/gallery", five_images[3].src))
        assert viewer.open_index == 3
        viewer.history.navigate("/gallery?img=%2Fnowhere.jpg")
        assert not viewer.is_open

    def test_other_params_survive_open_close(self, five_images):
        history = BrowserHistory("/gallery?lang=en")
        with ViewerController(five_images, history) as viewer:
            viewer.open(1)
            assert history.url.startswith("/gallery?lang=en&img=")
            viewer.close()
            assert history.url == "/gallery?lang=en"


class TestResume:

    def test_shared_link_opens_matching_image(self, five_images):
        history = BrowserHistory(url_with_image("/gallery", five_images[2].src))
        with ViewerController(five_images, history) as viewer:
            assert viewer.open_index == 2
            assert viewer.scroll_lock.held

    def test_unknown_src_is_closed(self, five_images):
        history = BrowserHistory("/gallery?img=%2Fgone.jpg")
        with ViewerController(five_images, history) as viewer:
            assert not viewer.is_open
            assert not viewer.scroll_lock.held

    def test_images_arriving_later(self, five_images):
        history = BrowserHistory(url_with_image("/gallery", five_images[4].src))
        with ViewerController([], history) as viewer:
            assert not viewer.is_open
            viewer.set_images(five_images)
            assert viewer.open_index == 4

    def test_reorder_follows_src(self, viewer, five_images):
        viewer.open(1)
        viewer.set_images(list(reversed(five_images)))
        assert viewer.open_index == 3
        assert viewer.current.src == five_images[1].src

    def test_removed_image_closes(self, viewer, five_images):
        viewer.open(4)
        viewer.set_images(five_images[:3])
        assert not viewer.is_open

    def test_unmounted_controller_still_syncs(self, five_images):
        viewer = ViewerController(five_images, BrowserHistory("/gallery"))
        viewer.open(2)
        assert viewer.open_index == 2
        viewer.close()
        assert not viewer.is_open
        assert viewer.history.length == 2


class TestScrollLocking:

    def test_open_locks_close_restores(self, viewer, document):
        viewer.open(0)
        assert document.overflow == "hidden"
        viewer.close()
        assert document.overflow == "auto"
        assert document.scroll_y == 640.0

    def test_navigation_keeps_single_lock(self, viewer):
        viewer.open(0)
        for _ in range(7):
            viewer.next()
        viewer.prev()
        assert viewer.scroll_lock.count == 1

    def test_unmount_while_open_restores(self, five_images, document):
        viewer = ViewerController(five_images, BrowserHistory("/gallery"), ScrollLock(document))
        viewer.mount()
        viewer.open(3)
        viewer.unmount()
        assert document.overflow == "auto"
        assert not viewer.mounted

    def test_exception_inside_context_restores(self, five_images, document):
        with pytest.raises(RuntimeError):
            with ViewerController(five_images, BrowserHistory("/gallery"),
                                  ScrollLock(document)) as viewer:
                viewer.open(1)
                raise RuntimeError("boom")
        assert document.overflow == "auto"

    def test_back_to_closed_releases(self, viewer, document):
        viewer.open(2)
        viewer.history.back()
        assert document.overflow == "auto"
        assert not viewer.scroll_lock.held


class TestView:

    def test_counter_and_fallback_original(self, viewer, five_images):
        viewer.open(2)
        view = viewer.view()
        assert view["counter"] == "3 / 5"
        assert view["index"] == 2
        assert view["total"] == 5
        assert view["src"] == five_images[2].src
        assert view["originalUrl"] == five_images[2].src

    def test_original_url_from_raw_source(self):
        img = GalleryImage(src="/thumb.jpg", raw_source={"asset": "china/ponte.jpg"},
                           alt="Ponte", caption={"it": "Ponte", "en": "Bridge"})
        with ViewerController([img]) as viewer:
            viewer.open(0)
            view = viewer.view("en")
        assert view["originalUrl"] == f"{IMAGE_CDN_BASE}/china/ponte.jpg?w=1600&q=80&auto=format"
        assert view["alt"] == "Ponte"
        assert view["caption"] == "Bridge"
        assert view["counter"] == "1 / 1"

    def test_single_image_wraps_to_itself(self):
        with ViewerController([GalleryImage(src="/only.jpg")]) as viewer:
            viewer.open(0)
            viewer.next()
            assert viewer.open_index == 0
            viewer.prev()
            assert viewer.open_index == 0


class TestImageReadiness:

    def test_load_cycle(self):
        ready = ImageReadiness()
        assert not ready.is_ready("/a.jpg")
        ready.mark_loaded("/a.jpg")
        assert ready.is_ready("/a.jpg")

    def test_failure_and_retry(self):
        ready = ImageReadiness()
        ready.mark_failed("/a.jpg")
        assert ready.has_failed("/a.jpg")
        assert not ready.is_ready("/a.jpg")
        assert ready.retry("/a.jpg") == 1
        assert not ready.has_failed("/a.jpg")
        assert ready.retry("/a.jpg") == 2
        ready.mark_loaded("/a.jpg")
        assert ready.is_ready("/a.jpg")
        assert ready.attempts("/a.jpg") == 2

    def test_reset_drops_unknown_srcs(self):
        ready = ImageReadiness()
        ready.mark_loaded("/a.jpg")
        ready.mark_failed("/b.jpg")
        ready.reset(["/a.jpg"])
        assert ready.is_ready("/a.jpg")
        assert not ready.has_failed("/b.jpg")
        assert ready.attempts("/b.jpg") == 0
