"""
Core Components

Shared configuration for the video generation client.
"""

from .config import Config, get_config, reload_config

__all__ = ["Config", "get_config", "reload_config"]
