"""Application configuration via environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings

# The fallback category used by the default category set
OTHER_CATEGORY = "其他"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # App
    debug: bool = False
    environment: str = "development"
    public_base_url: str = "http://localhost:3000"

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Shared API token (protects /api/links*); empty disables the check
    api_token: str = ""

    # Text generation (OpenAI-compatible API)
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    ai_model: str = "gpt-3.5-turbo"
    ai_temperature: float = 0.7
    ai_max_tokens: int = 1000
    ai_timeout: float = 30.0
    ai_json_mode: bool = True
    ai_prompt_template: str = ""
    ai_user_instructions: str = ""

    # Categories
    categories: list[str] = ["技术", "设计", "产品", "工具", OTHER_CATEGORY]
    default_category: str = OTHER_CATEGORY

    # Content extraction
    scrape_timeout: float = 10.0
    max_content_length: int = 8000
    prompt_content_length: int = 3000

    # Link storage: "memory" or "blob"
    link_store: str = "memory"
    azure_storage_account: str = ""
    azure_storage_container: str = "links"
    managed_identity_client_id: str = ""

    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def fallback_category(self) -> str:
        """Category assigned when nothing else classifies the content."""
        return resolve_fallback_category(self.categories, self.default_category)


def resolve_fallback_category(categories: list[str], default: str = "") -> str:
    """Pick the configured default, else "其他" if active, else the last category."""
    if default:
        return default
    if OTHER_CATEGORY in categories:
        return OTHER_CATEGORY
    return categories[-1] if categories else OTHER_CATEGORY


@lru_cache
def get_settings() -> Settings:
    return Settings()
