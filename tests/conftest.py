"""Pytest configuration - shared galleries and a throwaway media database."""
from __future__ import annotations

import pytest

import database as db
from gallery_layout import clear_layout_cache
from gallery_types import GalleryImage


@pytest.fixture(autouse=True)
def fresh_layout_cache():
    """Layouts are memoized per process; start every test cold."""
    clear_layout_cache()
    yield
    clear_layout_cache()


@pytest.fixture
def five_images():
    """Plain five-image gallery, no metadata."""
    return [GalleryImage(src=f"/destinations/guatemala/photo-{i}.jpg") for i in range(5)]


@pytest.fixture
def mixed_gallery():
    """Gallery touching every orientation, lock flag, hotspot and crop case."""
    records = [
        {"src": "/destinations/antigua/drone-10.jpg", "orientation": "landscape"},
        {"src": "/destinations/china/ponte-guangxi.jpg", "orientation": "portrait",
         "hotspot": {"x": 0.5, "y": 0.05, "width": 0.3, "height": 0.3}},
        {"src": "/destinations/mongolia/duna-gobi.jpg", "orientation": "panorama"},
        {"src": "/destinations/costarica/drone-020.jpg", "assetOrientation": "square",
         "orientation": "landscape"},
        {"src": "/destinations/guatemala/piramide.jpg", "orientation": "portrait",
         "lockOrientation": True},
        {"src": "/destinations/guatemala/chichi.jpg",
         "crop": {"top": 0.2, "bottom": 0.2, "left": 0.0, "right": 0.0}},
        {"src": "/destinations/china/tiger-leaping-gorge.jpg", "orientation": "landscape",
         "hotspot": {"x": 0.4, "y": 0.6, "width": 0.9, "height": 0.5}},
        {"src": "/destinations/mongolia/tenda.jpg"},
    ]
    return [GalleryImage.from_record(r) for r in records]


@pytest.fixture
def conn(tmp_path):
    connection = db.get_connection(tmp_path / "gallery.db")
    yield connection
    connection.close()
