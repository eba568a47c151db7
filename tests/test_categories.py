"""Tests for advisory shopping-item category classification."""

import json

import httpx
import pytest

from mealdeck.llm.categories import Category, build_category_prompt, classify_category


class TestCategory:
    """Tests for the Category enum."""

    def test_parse_exact(self):
        """Test exact display-string lookup."""
        assert Category.parse("Non-Food") is Category.NON_FOOD
        assert Category.parse("Online Alcohol") is Category.ONLINE_ALCOHOL

    def test_parse_is_case_sensitive(self):
        """Test that other casings are rejected."""
        assert Category.parse("vegetables") is None
        assert Category.parse(None) is None
        assert Category.parse(3) is None

    def test_sort_key_follows_aisle_order(self):
        """Test that Other sorts first and Online Alcohol last."""
        ordered = sorted([Category.ONLINE_ALCOHOL, Category.BAKERY, Category.OTHER], key=lambda c: c.sort_key)
        assert ordered == [Category.OTHER, Category.BAKERY, Category.ONLINE_ALCOHOL]

    def test_prompt_lists_every_category(self):
        """Test that the system prompt names all allowed categories."""
        prompt = build_category_prompt()
        for category in Category:
            assert category.value in prompt


class TestClassifyCategory:
    """Tests for classify_category."""

    @pytest.mark.asyncio
    async def test_known_category(self, make_llm_client, chat_response):
        """Test a valid model answer."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return chat_response('{"category": "Vegetables"}')

        category = await classify_category(make_llm_client(handler), "  Red  Peppers ")

        assert category is Category.VEGETABLES
        assert seen["body"]["temperature"] == 0.0
        assert "Normalized: red peppers" in seen["body"]["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_unknown_category(self, make_llm_client, chat_response):
        """Test that an invented category falls back to Other."""

        def handler(request: httpx.Request) -> httpx.Response:
            return chat_response('{"category": "Snacks"}')

        assert await classify_category(make_llm_client(handler), "crisps") is Category.OTHER

    @pytest.mark.asyncio
    async def test_http_failure(self, make_llm_client):
        """Test that an upstream error falls back to Other."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="unavailable")

        assert await classify_category(make_llm_client(handler), "milk") is Category.OTHER

    @pytest.mark.asyncio
    async def test_bad_json(self, make_llm_client, chat_response):
        """Test that an unparseable reply falls back to Other."""

        def handler(request: httpx.Request) -> httpx.Response:
            return chat_response("Dairy, probably")

        assert await classify_category(make_llm_client(handler), "milk") is Category.OTHER

    @pytest.mark.asyncio
    async def test_not_configured(self, make_llm_client):
        """Test that no request is made without an API key."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        assert await classify_category(make_llm_client(handler, api_key=""), "milk") is Category.OTHER
