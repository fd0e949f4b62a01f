"""Configuration models (pydantic-settings)."""

from offline_pay.config.settings import AppConfig

__all__ = ["AppConfig"]
