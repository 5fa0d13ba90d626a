"""Config package exporting loader helpers."""

from .loader import ClientConfig, Settings, StorageConfig, load_settings

__all__ = ["ClientConfig", "Settings", "StorageConfig", "load_settings"]
