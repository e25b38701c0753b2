"""Tests for the public content read endpoint."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from contentsync.api import content
from contentsync.database import get_db


@pytest.fixture
def client():
    app = FastAPI()
    app.include_router(content.router, prefix="/api/v1")
    app.dependency_overrides[get_db] = lambda: AsyncMock()
    return TestClient(app)


class TestReadContent:
    """Tests for GET /api/v1/content/{content_type}/{content_id}."""

    def test_fresh_cache_is_served(self, client):
        """A cache hit is returned without reading live content."""
        with (
            patch("contentsync.api.content.ContentCacheService") as cache_cls,
            patch("contentsync.api.content.ContentStore") as store_cls,
        ):
            cache_cls.return_value.get = AsyncMock(return_value={"title": "Cached"})
            store_cls.return_value.get = AsyncMock()

            response = client.get("/api/v1/content/page/home")

        assert response.status_code == 200
        assert response.json() == {
            "content_type": "page",
            "content_id": "home",
            "data": {"title": "Cached"},
            "source": "cache",
        }
        store_cls.return_value.get.assert_not_awaited()

    def test_cache_miss_falls_back_to_live(self, client):
        """Missing or expired cache entries fall back to live content."""
        live = MagicMock()
        live.data = {"title": "Live"}
        with (
            patch("contentsync.api.content.ContentCacheService") as cache_cls,
            patch("contentsync.api.content.ContentStore") as store_cls,
        ):
            cache_cls.return_value.get = AsyncMock(return_value=None)
            store_cls.return_value.get = AsyncMock(return_value=live)

            response = client.get("/api/v1/content/page/home")

        assert response.status_code == 200
        assert response.json()["source"] == "live"
        assert response.json()["data"] == {"title": "Live"}

    def test_unknown_content_is_404(self, client):
        with (
            patch("contentsync.api.content.ContentCacheService") as cache_cls,
            patch("contentsync.api.content.ContentStore") as store_cls,
        ):
            cache_cls.return_value.get = AsyncMock(return_value=None)
            store_cls.return_value.get = AsyncMock(return_value=None)

            response = client.get("/api/v1/content/page/missing")

        assert response.status_code == 404

    def test_no_token_required(self, client):
        """The read endpoint is public."""
        with (
            patch("contentsync.api.content.ContentCacheService") as cache_cls,
            patch("contentsync.api.content.ContentStore"),
        ):
            cache_cls.return_value.get = AsyncMock(return_value={"title": "Cached"})

            response = client.get(
                "/api/v1/content/page/home", headers={"Authorization": "Bearer nope"}
            )

        assert response.status_code == 200
