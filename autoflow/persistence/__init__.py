"""Execution table for the autoflow scheduler."""

from __future__ import annotations

from .inmemory import InMemoryExecutionRepository
from .repository import ExecutionRepository

__all__ = ["ExecutionRepository", "InMemoryExecutionRepository"]
