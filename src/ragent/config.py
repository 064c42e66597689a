"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = False
    DATA_DIR: str = "./data"
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # Reasoning capability
    PLANNER: str = "anthropic"  # Options: tgi, openai, anthropic
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-sonnet-latest"
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    TGI_ENDPOINT: str = "http://tgi:8080/generate"
    PLANNER_TIMEOUT_S: float = 60.0
    PLANNER_MAX_TOKENS: int = 2048

    # Vector store
    VECTOR_DB_HOST: str = "chroma"  # Service name in docker-compose
    VECTOR_DB_PORT: int = 8000
    DOCUMENTS_COLLECTION: str = "rag_documents"
    MEMORY_COLLECTION: str = "conversation_memory"
    EMBED_MODEL: str = "all-MiniLM-L6-v2"  # small; runs CPU-only

    # Tools
    GITHUB_TOKEN: str | None = None
    GITHUB_API_URL: str = "https://api.github.com"
    TOOL_TIMEOUT_MS: int = 30_000

    # Agent defaults, used when a request carries no explicit config
    AGENT_MAX_TOOL_CALLS: int = 5
    AGENT_ALLOW_PARALLEL: bool = True
    AGENT_USE_RETRIEVAL_CONTEXT: bool = True
    AGENT_TOP_K: int = 3
    AGENT_MIN_RELEVANCE_SCORE: float = 0.7

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
