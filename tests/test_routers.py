"""API tests for the recipe and shopping routers."""

import httpx
import pytest
from fastapi.testclient import TestClient

from mealdeck.config import get_settings
from mealdeck.database import get_db
from mealdeck.ingest.fetcher import PageFetcher
from mealdeck.main import app
from mealdeck.routers.recipes import get_llm_client, get_page_fetcher

PAGE_URL = "https://soup.example.com/recipes/tomato-soup"


@pytest.fixture
def llm_replies(extraction_reply):
    """Mutable reply for the fake LLM; tests change it before calling the API."""
    return {"content": extraction_reply, "status": 200}


@pytest.fixture
def api(override_db, make_llm_client, chat_response, llm_replies, recipe_page_html):
    """TestClient with the database, LLM and page fetcher replaced."""

    def llm_handler(request: httpx.Request) -> httpx.Response:
        return chat_response(llm_replies["content"], status_code=llm_replies["status"])

    def page_handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == PAGE_URL:
            return httpx.Response(200, text=recipe_page_html)
        return httpx.Response(404)

    def _llm_client():
        return make_llm_client(llm_handler)

    def _page_fetcher():
        return PageFetcher(http_client=httpx.AsyncClient(transport=httpx.MockTransport(page_handler)))

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_llm_client] = _llm_client
    app.dependency_overrides[get_page_fetcher] = _page_fetcher
    yield TestClient(app)
    app.dependency_overrides.clear()


# =============================================================================
# Recipe Endpoints
# =============================================================================


class TestRecipeImport:
    """Tests for POST /api/v1/recipes/import."""

    def test_import(self, api):
        """Test a successful import."""
        response = api.post("/api/v1/recipes/import", json={"url": PAGE_URL})
        assert response.status_code == 201

        data = response.json()
        assert data["title"] == "Tomato Soup"
        assert data["source"] == PAGE_URL
        assert data["ingredients"][0] == {"quantity": 800.0, "unit": "g", "name": "tomatoes, chopped"}
        # hero image URL 404s in this fixture
        assert data["image_path_full"] is None

    def test_invalid_url(self, api):
        """Test that non-http URLs are rejected by validation."""
        response = api.post("/api/v1/recipes/import", json={"url": "ftp://example.com/x"})
        assert response.status_code == 422

    def test_fetch_failure(self, api):
        """Test that an unreachable page maps to 502."""
        response = api.post("/api/v1/recipes/import", json={"url": "https://soup.example.com/missing"})
        assert response.status_code == 502

    def test_llm_failure(self, api, llm_replies):
        """Test that an LLM error maps to 502."""
        llm_replies["status"] = 500
        llm_replies["content"] = "upstream down"
        response = api.post("/api/v1/recipes/import", json={"url": PAGE_URL})
        assert response.status_code == 502

    def test_unrecoverable_json(self, api, llm_replies):
        """Test that a prose-only reply maps to 502."""
        llm_replies["content"] = "Sorry, no recipe here."
        response = api.post("/api/v1/recipes/import", json={"url": PAGE_URL})
        assert response.status_code == 502

    def test_not_configured(self, api, make_llm_client):
        """Test that a missing API key maps to 503."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        app.dependency_overrides[get_llm_client] = lambda: make_llm_client(handler, api_key="")
        response = api.post("/api/v1/recipes/import", json={"url": PAGE_URL})
        assert response.status_code == 503


class TestRecipeImageImport:
    """Tests for POST /api/v1/recipes/import/images."""

    def test_import_images(self, api, png_bytes):
        """Test a photo import."""
        response = api.post(
            "/api/v1/recipes/import/images",
            files=[("image", ("page1.png", png_bytes, "image/png"))],
        )
        assert response.status_code == 201
        assert response.json()["source"] is None
        assert response.json()["title"] == "Tomato Soup"

    def test_no_images(self, api):
        """Test that a request without files is rejected."""
        response = api.post("/api/v1/recipes/import/images", data={"note": "x"})
        assert response.status_code == 400

    def test_not_an_image(self, api):
        """Test that non-image uploads are rejected."""
        response = api.post(
            "/api/v1/recipes/import/images",
            files=[("image", ("notes.txt", b"hello", "text/plain"))],
        )
        assert response.status_code == 400


class TestRecipeBrowse:
    """Tests for listing and reading recipes."""

    def test_list_and_get(self, api):
        """Test that an imported recipe is listed and readable."""
        created = api.post("/api/v1/recipes/import", json={"url": PAGE_URL}).json()

        listing = api.get("/api/v1/recipes").json()
        assert listing["total"] == 1
        assert listing["recipes"][0]["id"] == created["id"]

        response = api.get(f"/api/v1/recipes/{created['id']}")
        assert response.status_code == 200
        assert response.json()["title"] == "Tomato Soup"

    def test_get_missing(self, api):
        """Test 404 for an unknown recipe."""
        assert api.get("/api/v1/recipes/999").status_code == 404

    def test_parse_ingredient(self, api):
        """Test the ingredient line parser endpoint."""
        response = api.post("/api/v1/recipes/parse-ingredient", json={"line": "2-3 tbsp sugar"})
        assert response.status_code == 200
        assert response.json() == {"quantity": 2.5, "unit": "tbsp", "name": "sugar"}


# =============================================================================
# Shopping Endpoints
# =============================================================================


class TestShoppingApi:
    """Tests for /api/v1/shopping."""

    def test_add_and_list(self, api):
        """Test free-text adds merging into one entry."""
        assert api.post("/api/v1/shopping", json={"text": "100 g flour"}).status_code == 201
        response = api.post("/api/v1/shopping", json={"text": "0.25 kg flour"})
        assert response.json()["text"] == "350 g flour"

        items = api.get("/api/v1/shopping").json()
        assert [i["merge_key"] for i in items] == ["g|flour"]

    def test_add_empty(self, api):
        """Test that empty text is a bad request."""
        assert api.post("/api/v1/shopping", json={"text": "  "}).status_code == 400

    def test_merge(self, api):
        """Test a batch merge."""
        response = api.post(
            "/api/v1/shopping/merge",
            json={
                "items": [
                    {"name": "flour", "quantity": 100, "unit": "g"},
                    {"name": "flour", "quantity": 200, "unit": "g"},
                    {"name": "milk"},
                ]
            },
        )
        assert response.status_code == 200
        data = response.json()
        assert [(i["merge_key"], i["quantity"]) for i in data] == [("g|flour", 300.0), ("|milk", None)]
        assert data[1]["category"] == "Dairy"

    def test_merge_rejects_empty_item(self, api):
        """Test that one empty item fails the whole batch."""
        response = api.post(
            "/api/v1/shopping/merge",
            json={"items": [{"name": "flour", "quantity": 1, "unit": "kg"}, {"name": ""}]},
        )
        assert response.status_code == 400
        assert api.get("/api/v1/shopping").json() == []

    def test_merge_rejects_negative_quantity(self, api):
        """Test request validation of quantities."""
        response = api.post(
            "/api/v1/shopping/merge", json={"items": [{"name": "flour", "quantity": -1}]}
        )
        assert response.status_code == 422

    def test_patch(self, api):
        """Test toggling done."""
        item = api.post("/api/v1/shopping", json={"text": "milk"}).json()
        response = api.patch(f"/api/v1/shopping/{item['id']}", json={"done": True})
        assert response.status_code == 200
        assert response.json()["done"] is True

    def test_patch_conflict(self, api):
        """Test 409 when new text collides with another entry."""
        api.post("/api/v1/shopping", json={"text": "100 g flour"})
        milk = api.post("/api/v1/shopping", json={"text": "milk"}).json()

        response = api.patch(f"/api/v1/shopping/{milk['id']}", json={"text": "1 kg flour"})
        assert response.status_code == 409

    def test_patch_errors(self, api):
        """Test 404 for unknown items and 400 for empty updates."""
        assert api.patch("/api/v1/shopping/999", json={"done": True}).status_code == 404
        item = api.post("/api/v1/shopping", json={"text": "milk"}).json()
        assert api.patch(f"/api/v1/shopping/{item['id']}", json={}).status_code == 400

    def test_delete(self, api):
        """Test deleting an item twice."""
        item = api.post("/api/v1/shopping", json={"text": "milk"}).json()
        assert api.delete(f"/api/v1/shopping/{item['id']}").status_code == 204
        assert api.delete(f"/api/v1/shopping/{item['id']}").status_code == 404

    def test_classify(self, api, llm_replies):
        """Test category suggestion."""
        llm_replies["content"] = '{"category": "Fruits"}'
        response = api.post("/api/v1/shopping/classify", json={"name": "apples"})
        assert response.json() == {"category": "Fruits"}

    def test_classify_falls_back(self, api, llm_replies):
        """Test that classification failures still answer Other."""
        llm_replies["status"] = 500
        response = api.post("/api/v1/shopping/classify", json={"name": "apples"})
        assert response.status_code == 200
        assert response.json() == {"category": "Other"}

    def test_classify_empty(self, api):
        """Test that an empty name is a bad request."""
        assert api.post("/api/v1/shopping/classify", json={"name": " "}).status_code == 400


class TestRecipeEditing:
    """Tests for hand-written recipes: create, update, delete and image upload."""

    @pytest.fixture
    def media_dir(self, tmp_path, monkeypatch):
        """Point image storage at a temp directory."""
        media = tmp_path / "media"
        monkeypatch.setattr(get_settings(), "media_dir", str(media))
        return media

    def _create(self, api, **overrides):
        body = {
            "title": "Pancakes",
            "yield": "4 servings",
            "ingredients": ["120 g flour", "2-3 tbsp sugar", "  ", "a pinch of salt"],
            "instructions": ["Mix", " ", "Fry "],
        }
        body.update(overrides)
        return api.post("/api/v1/recipes", json=body)

    def test_create_parses_lines(self, api):
        """Test that typed ingredient lines are stored structured."""
        response = self._create(api)
        assert response.status_code == 201

        data = response.json()
        assert data["title"] == "Pancakes"
        assert data["yield"] == "4 servings"
        assert data["source"] is None
        assert data["ingredients"] == [
            {"quantity": 120.0, "unit": "g", "name": "flour"},
            {"quantity": 2.5, "unit": "tbsp", "name": "sugar"},
            {"quantity": None, "unit": None, "name": "a pinch of salt"},
        ]
        assert data["instructions"] == ["Mix", "Fry"]

    def test_create_requires_title(self, api):
        """Test that a blank title is a bad request."""
        assert self._create(api, title="   ").status_code == 400
        assert api.get("/api/v1/recipes").json()["total"] == 0

    def test_update(self, api):
        """Test a partial update that re-parses ingredients."""
        created = self._create(api).json()

        response = api.put(
            f"/api/v1/recipes/{created['id']}",
            json={"ingredients": ["1 kg potatoes"], "notes": "Use waxy ones"},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["ingredients"] == [{"quantity": 1.0, "unit": "kg", "name": "potatoes"}]
        assert data["notes"] == "Use waxy ones"
        assert data["title"] == "Pancakes"
        assert data["instructions"] == ["Mix", "Fry"]

    def test_update_errors(self, api):
        """Test 404 for unknown recipes and 400 for empty or invalid updates."""
        assert api.put("/api/v1/recipes/999", json={"title": "X"}).status_code == 404

        created = self._create(api).json()
        assert api.put(f"/api/v1/recipes/{created['id']}", json={}).status_code == 400
        assert api.put(f"/api/v1/recipes/{created['id']}", json={"title": ""}).status_code == 400

    def test_delete(self, api, media_dir, png_bytes):
        """Test that deleting removes the row and its image files."""
        created = self._create(api).json()
        api.post(
            f"/api/v1/recipes/{created['id']}/image",
            files={"image": ("hero.png", png_bytes, "image/png")},
        )
        assert (media_dir / "recipes" / str(created["id"])).is_dir()

        assert api.delete(f"/api/v1/recipes/{created['id']}").status_code == 204
        assert api.get(f"/api/v1/recipes/{created['id']}").status_code == 404
        assert not (media_dir / "recipes" / str(created["id"])).exists()
        assert api.delete(f"/api/v1/recipes/{created['id']}").status_code == 404

    def test_upload_image(self, api, media_dir, png_bytes):
        """Test that an uploaded image is re-encoded and attached."""
        created = self._create(api).json()

        response = api.post(
            f"/api/v1/recipes/{created['id']}/image",
            files={"image": ("hero.png", png_bytes, "image/png")},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["image_path_full"] == f"recipes/{created['id']}/full.webp"
        assert data["image_path_small"] == f"recipes/{created['id']}/thumb.webp"
        assert (media_dir / data["image_path_full"]).is_file()

    def test_upload_image_errors(self, api, media_dir):
        """Test unknown recipes, non-images and undecodable images."""
        files = {"image": ("hero.jpg", b"not really a jpeg", "image/jpeg")}
        assert api.post("/api/v1/recipes/999/image", files=files).status_code == 404

        created = self._create(api).json()
        url = f"/api/v1/recipes/{created['id']}/image"
        assert api.post(url, files=files).status_code == 400
        assert (
            api.post(url, files={"image": ("notes.txt", b"hi", "text/plain")}).status_code == 400
        )
        assert api.get(f"/api/v1/recipes/{created['id']}").json()["image_path_full"] is None
