"""Clients for the chat host backend."""

from .backend import BackendClient, BackendError, BackendResponse

__all__ = ["BackendClient", "BackendError", "BackendResponse"]
