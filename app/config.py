from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Generation gateway (any OpenAI-compatible chat completions endpoint)
    generation_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    generation_model: str = "gemini-2.5-pro"
    generation_temperature: float = 0.2
    generation_max_tokens: int = 8192
    generation_timeout_seconds: float = 120.0
    generation_api_key: str = ""  # CLI fallback only; the API takes keys per request

    # Serper search
    serper_search_url: str = "https://google.serper.dev/search"
    serper_api_key: str = ""  # CLI fallback only
    search_results_per_query: int = 10
    search_country: str = "us"
    search_language: str = "en"
    search_time_filter: str = "qdr:m"  # past month
    search_timeout_seconds: float = 30.0
    search_max_parallel_requests: int = 10
    search_max_age_years: int = 2

    # Report post-processing
    min_risk_categories: int = 5
    max_top_risks: int = 10

    # Status polling
    status_poll_interval_seconds: float = 1.0
    stall_after_seconds: float = 90.0

    # App
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
