"""
Shared configuration, authentication and endpoint catalogues for the
identity migration tooling.
"""
__version__ = "1.0.0"

__all__ = ["auth", "config", "endpoints", "errors"]
