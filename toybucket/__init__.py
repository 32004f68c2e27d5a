"""Toy bucket service: JWT-authenticated shopping bucket operations."""

__version__ = "1.0.0"
__all__ = [
    "app",
    "auth",
    "clients",
    "jsonlog",
    "models",
    "server",
    "service",
    "storage",
    "validator",
]