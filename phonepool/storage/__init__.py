"""
Storage Package
===============

Repository interface and the in-process implementation.
"""

from phonepool.storage.memory import InMemoryRepository
from phonepool.storage.repository import Repository

__all__ = ["InMemoryRepository", "Repository"]
