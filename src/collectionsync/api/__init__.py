"""FastAPI application exposing the collection file store over HTTP."""

from .app import create_app
from .settings import FileStoreApiSettings

__all__ = ["create_app", "FileStoreApiSettings"]
