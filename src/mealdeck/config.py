"""Application configuration using pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_IMPORT_PROMPT = """You are a precise recipe data extractor and normalizer.

INPUT: plain text from a recipe page (any language), or photos of a recipe.
OUTPUT: STRICT JSON with exactly these keys:
{
  "title": string,
  "ingredients": [
    {"quantity": null | number, "unit": null | "g" | "kg" | "ml" | "L" | "tsp" | "tbsp", "name": string}
  ],
  "instructions": [string]
}

TASK:
- Translate to English.
- Extract a clean, concise title.
- Convert ALL imperial units to metric in the INGREDIENTS.
  * Allowed units: g, kg, ml, L, tsp, tbsp.
  * Never use: cup, cups, oz, ounce, ounces, fl oz, pound, lb.
  * Keep tsp and tbsp abbreviations as written (do not spell out).
- For solid items, convert oz to g (1 oz = 28 g).
  For liquids, convert fl oz to ml (1 fl oz = 30 ml).
  For cups, convert to ml (1 cup = 240 ml).
- When a quantity is a range, replace the range with the mean value.
- Use 0.5/0.25/0.75 style; never 1/2, 1/4, etc.
- If no numeric quantity, set "quantity": null and "unit": null.
- If an ingredient has preparation words (e.g. diced, minced, sliced, grated),
  append them after the name separated by ", ".
  Example: {"quantity": 2, "unit": null, "name": "carrots, diced"}
- "instructions": array of steps (strings).
- If data is missing, return an empty array for that key.
- Do NOT include commentary or extra keys. Answer only with the final JSON.
"""


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "postgresql+asyncpg://localhost/mealdeck"

    # Media storage for hero images
    media_dir: str = "media"

    # LLM (OpenAI-compatible chat completions)
    llm_api_url: str = "https://openrouter.ai/api/v1"
    llm_api_key: str = ""  # empty disables extraction
    llm_model: str = "deepseek/deepseek-chat-v3.1"
    llm_vision_model: str = "google/gemini-2.0-flash-001"
    llm_temperature: float = 0.1
    llm_import_timeout: float = 120.0
    llm_import_max_tokens: int | None = None
    llm_vision_max_tokens: int = 5000
    llm_category_timeout: float = 12.0
    llm_category_max_tokens: int = 120
    system_prompt_import: str = DEFAULT_IMPORT_PROMPT

    # Page / image fetching
    fetch_timeout: float = 95.0  # overall request timeout in seconds
    fetch_connect_timeout: float = 10.0
    image_fetch_timeout: float = 40.0
    max_page_chars: int = 12_000

    # Vision import limits
    max_import_images: int = 3
    max_image_bytes: int = 10 * 1024 * 1024

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    allowed_origins: str = "http://localhost:3000,http://localhost:8000"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    @property
    def llm_enabled(self) -> bool:
        """Check whether an LLM API key is configured."""
        return bool(self.llm_api_key.strip())


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
