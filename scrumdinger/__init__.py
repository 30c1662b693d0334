"""Application layer for a scrum meeting service: errors, validation, auth, middleware and handlers."""

__version__ = "0.1.0"