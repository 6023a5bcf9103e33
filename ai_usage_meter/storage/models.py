"""
Data models for storage layer.

Defines database entities and data structures.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class UsageLogEntry:
    """Immutable record of a single completion call.

    Append-only rows that form the usage log of AI calls.
    Once written, these records must never be modified.
    """
    id: str
    model: str
    input_text: str
    output_text: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    input_cost: Decimal
    output_cost: Decimal
    total_cost: Decimal
    created_at: Optional[datetime] = None  # Assigned by the database on insert

    def __post_init__(self):
        """Validate token counts and costs are non-negative."""
        for name in ("input_tokens", "output_tokens", "total_tokens"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        for name in ("input_cost", "output_cost", "total_cost"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
