"""Configuration package for the calibration and Lock Mode pipeline."""

from .settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
