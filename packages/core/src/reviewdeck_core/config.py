import os
from pathlib import Path
from typing import Optional

import yaml

from reviewdeck_store.errors import ValidationError

DEFAULT_CONFIG: dict = {
    "model": "anthropic",
    "store": "sqlite",  # "sqlite" | "memory"
    "store_path": ".reviewdeck.db",
    "window_days": 30,
    "ranking_limit": 5,
    "max_chars_per_file": 20000,
    "prompts": {},  # review_prompt_id -> prompt text sent to the analysis backend
    "scoring": {},  # optional positive_keywords / negative_keywords overrides
}

DEFAULT_PROMPT = """Review the code below for quality, security and performance problems.
Point out hardcoded credentials, null handling risks, connection borrow/return
(empresta/devolve) leaks and slow code paths. Mention line numbers when you can.
Finish with a short overall assessment of the code quality."""


def load_config(config_path: str = ".reviewdeck.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .reviewdeck.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "prompts": dict(DEFAULT_CONFIG["prompts"]), "scoring": dict(DEFAULT_CONFIG["scoring"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config


def load_prompt(config: dict, prompt_id: Optional[str] = None) -> str:
    """
    Resolve the review prompt for ``prompt_id``.

    With no id the built-in prompt is used. An id that is not listed under
    ``prompts`` in the config is a caller error.
    """
    if not prompt_id:
        return DEFAULT_PROMPT

    prompts = config.get("prompts") or {}
    if prompt_id not in prompts:
        raise ValidationError(f"Unknown review prompt: {prompt_id!r}")
    return prompts[prompt_id]
