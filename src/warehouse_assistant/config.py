# config.py
# Runtime settings, read once from the environment (and .env, if present).

import os
from typing import Literal

import httpx
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from warehouse_assistant.inference import GeminiClient, InferenceClient, OpenRouterClient

load_dotenv()


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    backend: Literal["gemini", "openrouter"] = "gemini"
    inference_url: str = "http://localhost:54321/functions/v1/gemini"
    inference_key: str | None = None
    model: str = "google/gemini-2.5-flash"
    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    db_path: str = "warehouse.db"
    request_timeout: float = Field(default=60.0, gt=0)
    connectivity_url: str | None = None

    @classmethod
    def from_env(cls) -> "Settings":
        env = {
            "backend": os.getenv("ASSISTANT_BACKEND"),
            "inference_url": os.getenv("ASSISTANT_INFERENCE_URL"),
            "inference_key": os.getenv("ASSISTANT_INFERENCE_KEY"),
            "model": os.getenv("ASSISTANT_MODEL"),
            "openrouter_api_key": os.getenv("OPENROUTER_API_KEY"),
            "openrouter_base_url": os.getenv("OPENROUTER_BASE_URL"),
            "db_path": os.getenv("WAREHOUSE_DB_PATH"),
            "request_timeout": os.getenv("ASSISTANT_TIMEOUT"),
            "connectivity_url": os.getenv("ASSISTANT_CONNECTIVITY_URL"),
        }
        return cls.model_validate({k: v for k, v in env.items() if v})


def build_client(settings: Settings) -> InferenceClient:
    if settings.backend == "openrouter":
        return OpenRouterClient(
            model=settings.model,
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            timeout=settings.request_timeout,
        )
    return GeminiClient(
        endpoint=settings.inference_url,
        api_key=settings.inference_key,
        timeout=settings.request_timeout,
    )


def probe_connectivity(url: str | None, timeout: float = 3.0) -> bool:
    """
    Online/offline flag for the surrounding interface.

    No URL means there is nothing to probe, so the session counts as online.
    Any HTTP answer (even an error status) proves the network is reachable.
    """
    if not url:
        return True
    try:
        httpx.head(url, timeout=timeout)
    except httpx.TransportError:
        return False
    return True
