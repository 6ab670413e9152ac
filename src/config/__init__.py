"""Configuration module - exports Settings and load_settings."""

from src.config.loader import load_settings
from src.config.settings import Settings

__all__ = ["Settings", "load_settings"]
