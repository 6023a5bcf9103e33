"""
Best-effort usage logging for completion calls.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import structlog

from ..core.pricing import CostBreakdown
from ..core.token_counter import TokenUsage
from ..storage.db import DEFAULT_DB_PATH
from ..storage.models import UsageLogEntry
from ..storage.repository import insert_usage_log

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LogOutcome:
    """Result of a usage log write: either the new entry id or the error."""
    ok: bool
    entry_id: Optional[str] = None
    error: Optional[str] = None


def _to_decimal(amount: float) -> Decimal:
    return Decimal(str(amount))


class UsageLogger:
    """Writes one usage log entry per completion call.

    Failures are recorded in the returned outcome and logged, never raised:
    usage accounting must not fail the call it describes.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def record(
        self,
        model: str,
        input_text: str,
        output_text: str,
        usage: TokenUsage,
        cost: CostBreakdown
    ) -> LogOutcome:
        try:
            entry = UsageLogEntry(
                id=uuid.uuid4().hex,
                model=model,
                input_text=input_text,
                output_text=output_text,
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
                total_tokens=usage.total_tokens,
                input_cost=_to_decimal(cost.input_cost),
                output_cost=_to_decimal(cost.output_cost),
                total_cost=_to_decimal(cost.total_cost)
            )
            entry_id = insert_usage_log(entry, self.db_path)
        except Exception as e:
            logger.error("usage_log.write_failed", model=model, error=str(e))
            return LogOutcome(ok=False, error=str(e))

        logger.debug("usage_log.written", model=model, entry_id=entry_id)
        return LogOutcome(ok=True, entry_id=entry_id)
