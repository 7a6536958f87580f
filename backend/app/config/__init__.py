"""Configuration package for the portal dashboard service."""

from .settings import AppSettings, get_settings

__all__ = ["AppSettings", "get_settings"]
