"""Database modules for persistent bot state."""
from .state_db import StateDB, StateStats

__all__ = ["StateDB", "StateStats"]
