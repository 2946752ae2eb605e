"""Repository implementations."""

from ideaverse.persistence.repositories.session_repo import SessionRepository

__all__ = [
    "SessionRepository",
]
