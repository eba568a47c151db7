"""Pytest configuration and shared fixtures."""

import io
import json
from collections.abc import Callable

import httpx
import pytest
import pytest_asyncio
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from mealdeck.database import Base
from mealdeck.llm.client import LlmClient

# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (require external services)"
    )
    config.addinivalue_line("markers", "slow: marks tests as slow running")


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def db_session():
    """In-memory SQLite session with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def sqlite_file_url(tmp_path):
    """File-backed SQLite database with tables, for tests that run the ASGI app.

    Returns the aiosqlite URL. Tables are created through the sync driver so
    the fixture does not need an event loop.
    """
    path = tmp_path / "mealdeck-test.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture
def override_db(sqlite_file_url):
    """Build a ``get_db`` replacement bound to the test database."""
    engine = create_async_engine(sqlite_file_url, poolclass=NullPool)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def _get_db():
        async with session_factory() as session:
            yield session

    return _get_db


# =============================================================================
# LLM Fixtures
# =============================================================================


@pytest.fixture
def chat_response() -> Callable[[str], httpx.Response]:
    """Build an OpenAI-style chat completion response with the given content."""

    def _build(content: str, status_code: int = 200) -> httpx.Response:
        return httpx.Response(
            status_code,
            json={"choices": [{"message": {"role": "assistant", "content": content}}]},
        )

    return _build


@pytest.fixture
def make_llm_client() -> Callable[..., LlmClient]:
    """Build an LlmClient whose HTTP traffic goes to a handler instead of the network."""

    def _build(handler, api_key: str = "test-key") -> LlmClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return LlmClient(
            base_url="https://llm.test/api/v1",
            api_key=api_key,
            model="test/model",
            http_client=http_client,
        )

    return _build


@pytest.fixture
def extraction_payload():
    """A typical LLM extraction reply."""
    return {
        "title": "Easy Tomato Soup",
        "ingredients": [
            {"quantity": 800, "unit": "g", "name": "tomatoes, chopped"},
            {"quantity": 1, "unit": None, "name": "onion", "prep": "diced"},
            {"quantity": 2, "unit": "tbsp", "name": "olive oil"},
            {"quantity": 500, "unit": "ml", "name": "vegetable stock"},
            {"quantity": None, "unit": None, "name": "salt"},
        ],
        "instructions": [
            "Soften the onion in the oil.",
            "Add tomatoes and stock, simmer 20 minutes.",
            "Blend and season with salt.",
        ],
    }


@pytest.fixture
def extraction_reply(extraction_payload) -> str:
    """The extraction payload wrapped in commentary and a code fence."""
    return "Here is the recipe:\n```json\n" + json.dumps(extraction_payload) + "\n```\nEnjoy!"


# =============================================================================
# HTML / Image Fixtures
# =============================================================================


@pytest.fixture
def recipe_page_html():
    """A recipe page with JSON-LD, Open Graph and DOM images plus page chrome."""
    return """<!DOCTYPE html>
<html>
<head>
  <title>Best Tomato Soup Recipe | Soup Kitchen</title>
  <meta property="og:title" content="Easy Tomato Soup Recipe">
  <meta property="og:image" content="https://cdn.example.com/og-soup.jpg">
  <meta property="og:image:width" content="1200">
  <meta property="og:image:height" content="630">
  <meta name="twitter:image" content="https://cdn.example.com/twitter-soup.jpg">
  <script type="application/ld+json">
  {"@context": "https://schema.org", "@graph": [
    {"@type": "WebPage", "name": "Soup"},
    {"@type": "Recipe", "name": "Tomato Soup",
     "image": {"@type": "ImageObject", "url": "/images/soup-ld.jpg", "width": 1200, "height": 800}}
  ]}
  </script>
  <style>.hidden { display: none; }</style>
</head>
<body>
  <header><nav><a href="/">Home</a> <a href="/recipes">Recipes</a></nav></header>
  <article>
    <h1>Tomato Soup</h1>
    <img src="/images/logo.png" alt="logo">
    <p>A <b>quick</b> soup for cold evenings.</p>
    <h2>Ingredients</h2>
    <ul>
      <li>800 g tomatoes</li>
      <li>1 onion, diced</li>
      <li>2 tbsp olive oil</li>
    </ul>
    <div style="display: none">Subscribe to our newsletter</div>
    <h2>Method</h2>
    <ol>
      <li>Soften the onion in the oil.</li>
      <li>Add tomatoes and simmer.</li>
    </ol>
  </article>
  <footer>&copy; Soup Kitchen</footer>
  <script>trackPageView();</script>
</body>
</html>"""


@pytest.fixture
def png_bytes() -> bytes:
    """A 1600x900 RGB PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", (1600, 900), color=(200, 60, 40)).save(buffer, format="PNG")
    return buffer.getvalue()
