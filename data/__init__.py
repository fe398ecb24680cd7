"""metatx-client — backend transport and discovery."""

from .backend_client import BackendClient
from .backend_directory import BackendDirectory

__all__ = [
    "BackendClient",
    "BackendDirectory",
]
