"""
Instacart Behavioral Buying Patterns
Configuration Module
"""
from .settings import AnalyticsSettings, DataSettings, Settings, get_settings

__all__ = ["AnalyticsSettings", "DataSettings", "Settings", "get_settings"]
