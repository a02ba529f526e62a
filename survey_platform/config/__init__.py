"""
Configuration for the Survey Platform API.
"""

from survey_platform.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
