from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenRouter (generator). Empty key disables answer streaming.
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "openai/gpt-4o-mini"
    openrouter_model: str = ""
    generator_max_tokens: int = 2048

    # Search providers
    tavily_api_key: str = ""  # quick mode
    brave_api_key: str = ""  # deep mode (web + images)
    default_research_mode: str = "auto"  # auto | quick | deep
    search_fallback_to_tavily: bool = True
    quick_max_results: int = 8
    deep_target_results: int = 28
    deep_page_size: int = 10
    deep_max_extra_pages: int = 3
    search_page_timeout_s: float = 12.0
    quick_search_timeout_s: float = 15.0
    image_search_max_results: int = 6
    search_time_range: str = ""  # day | week | month | year; empty searches all dates
    quick_search_depth: str = "basic"  # basic | advanced

    # Scrape tiers
    firecrawl_api_key: str = ""
    firecrawl_base_url: str = "https://api.firecrawl.dev"
    jina_api_key: str = ""
    jina_reader_base_url: str = "https://r.jina.ai"
    scrape_max_parallel_requests: int = 8
    scrape_tier_timeout_s: float = 9.0
    scrape_max_content_chars: int = 20000

    # Rerank
    jina_rerank_url: str = "https://api.jina.ai/v1/rerank"
    jina_rerank_model: str = "jina-reranker-v2-base-multilingual"
    rerank_timeout_s: float = 10.0
    rerank_doc_chars: int = 800

    # Context budget
    context_max_sources: int = 28
    context_top_tier_count: int = 10
    context_top_budget_chars: int = 1200
    context_tail_budget_chars: int = 800
    context_snippet_disclaimer_threshold: int = 8

    # Result cache
    cache_backend: str = "memory"  # memory | file
    cache_dir: str = ".cache/results"
    cache_default_ttl_s: int = 60
    cache_prune_every: int = 200  # writes between sweeps of expired entries

    # Streaming
    research_preview_sources: bool = False

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
