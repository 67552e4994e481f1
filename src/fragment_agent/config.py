# config.py
# Engine settings, read from the environment (.env supported).

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class EngineConfig(BaseModel):
    model: str = "google/gemini-2.5-pro"
    api_key: str | None = None
    base_url: str = OPENROUTER_BASE_URL
    temperature: float = 0.1
    max_steps: int = Field(default=10, ge=1, description="Hard ceiling on model turns.")

    sandbox_template: str = "lovable-clone-nextjs"
    sandbox_api_key: str | None = None
    app_port: int = 3000

    probe_max_polls: int = Field(default=30, ge=1)
    probe_interval: float = Field(default=1.0, ge=0)

    verify_public_url: bool = True

    step_log_dir: str | None = Field(
        default=None,
        description="Directory for per-run JSON step logs. None keeps the log in memory.",
    )

    @classmethod
    def from_env(cls) -> "EngineConfig":
        values = {
            "model": os.getenv("AGENT_MODEL"),
            "api_key": os.getenv("OPENROUTER_API_KEY"),
            "base_url": os.getenv("OPENROUTER_BASE_URL"),
            "temperature": os.getenv("AGENT_TEMPERATURE"),
            "max_steps": os.getenv("AGENT_MAX_STEPS"),
            "sandbox_template": os.getenv("SANDBOX_TEMPLATE"),
            "sandbox_api_key": os.getenv("E2B_ACCESS_TOKEN") or os.getenv("E2B_API_KEY"),
            "app_port": os.getenv("SANDBOX_APP_PORT"),
            "probe_max_polls": os.getenv("PROBE_MAX_POLLS"),
            "probe_interval": os.getenv("PROBE_INTERVAL_SECONDS"),
            "verify_public_url": os.getenv("VERIFY_PUBLIC_URL"),
            "step_log_dir": os.getenv("STEP_LOG_DIR"),
        }
        # Unset variables fall back to the field defaults.
        return cls.model_validate({k: v for k, v in values.items() if v})
