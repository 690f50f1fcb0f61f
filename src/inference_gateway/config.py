from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    gateway_host: str = "0.0.0.0"
    gateway_port: int = 8000
    log_level: str = "INFO"

    # Ollama backend
    ollama_base_url: str = "http://localhost:11434"

    # Extra Ollama embedding routes, "alias=backend_model" or just "name"
    ollama_embedding_models: str = ""

    # In-process embedder (sentence-transformers), loaded on first use
    local_embedding_model: str = "BAAI/bge-m3"
    local_embedding_device: str = ""

    # Timeouts (seconds)
    backend_timeout: float = 120.0
    health_check_timeout: float = 5.0
    request_timeout: float = 60.0
    # Model pulls only; chat and generate streams use request_timeout
    stream_timeout: float = 1800.0

    # Static service metadata reported by /v1/system-info
    service_name: str = "Inference Gateway"
    service_version: str = "1.0.0"
    service_description: str = "Chat, generation and embedding gateway for Ollama"
    service_author: str = ""
    service_author_url: str = ""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def get_ollama_embedding_routes(self) -> dict[str, str]:
        """Parse ``ollama_embedding_models`` into ``{alias: backend_model}``."""
        routes: dict[str, str] = {}
        for item in self.ollama_embedding_models.split(","):
            item = item.strip()
            if not item:
                continue
            alias, _, backend_model = item.partition("=")
            alias = alias.strip()
            routes[alias] = backend_model.strip() or alias
        return routes


settings = Settings()
