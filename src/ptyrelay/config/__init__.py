"""Configuration management for ptyrelay.

Loads and validates YAML-based configuration with Pydantic models.
Supports environment variable overrides via the PTYRELAY_ prefix.
"""

from ptyrelay.config.settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
