"""
Configuration for DocDecode
Defaults for the Gemini models, history database and log level, overridable
from the environment.
"""

import os
from dataclasses import dataclass


@dataclass
class Config:
    # --- Gemini ---
    api_key: str = ""
    # Non-premium analysis uses the lighter model; premium switches model.
    standard_model: str = "gemini-3-flash-preview"
    premium_model: str = "gemini-2.5-flash"
    chat_model: str = "gemini-3-flash-preview"

    # --- History ---
    db_path: str = "docdecode.db"

    # --- Logging ---
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """Defaults overridden by GEMINI_API_KEY and DOCDECODE_* variables."""
        cfg = cls()
        cfg.api_key = os.environ.get("GEMINI_API_KEY", cfg.api_key)
        cfg.db_path = os.environ.get("DOCDECODE_DB_PATH", cfg.db_path)
        cfg.standard_model = os.environ.get("DOCDECODE_STANDARD_MODEL", cfg.standard_model)
        cfg.premium_model = os.environ.get("DOCDECODE_PREMIUM_MODEL", cfg.premium_model)
        cfg.chat_model = os.environ.get("DOCDECODE_CHAT_MODEL", cfg.chat_model)
        cfg.log_level = os.environ.get("DOCDECODE_LOG_LEVEL", cfg.log_level).upper()
        return cfg
