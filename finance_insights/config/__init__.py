"""
Financial Reporting & Insight Engine
Configuration Module
"""
from .settings import DatabaseSettings, ReportingSettings, Settings, get_settings

__all__ = ["DatabaseSettings", "ReportingSettings", "Settings", "get_settings"]
