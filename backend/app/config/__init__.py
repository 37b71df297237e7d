"""Configuration package for the trade journal engine service."""

from .settings import AppSettings, get_settings

__all__ = ["AppSettings", "get_settings"]
