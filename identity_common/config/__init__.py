"""
Configuration management for the fast-migrate tooling.
"""

from .config_loader import ConfigLoader

__all__ = ["ConfigLoader"]
