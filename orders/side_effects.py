"""Best-effort stages that run after an order is stored."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Dict, Optional

logger = logging.getLogger(__name__)

class StageStatus(str, Enum):
    OK = 'ok'
    FAILED = 'failed'
    SKIPPED = 'skipped'

@dataclass
class StageResult:
    stage: str
    status: StageStatus
    detail: Optional[str] = None

    @classmethod
    def skipped(cls, stage: str, detail: str) -> 'StageResult':
        return cls(stage, StageStatus.SKIPPED, detail)

    def to_dict(self) -> Dict[str, Any]:
        return {'stage': self.stage, 'status': self.status.value, 'detail': self.detail}

async def run_stage(stage: str, order_id: str, coro: Awaitable) -> StageResult:
    """Await a side effect, turning any failure into a failed StageResult.

    A stage returning ``False`` counts as skipped.
    """
    try:
        result = await coro
    except Exception as e:
        logger.error(f"Order {order_id}: {stage} failed: {e}", exc_info=True)
        return StageResult(stage, StageStatus.FAILED, str(e))

    if result is False:
        logger.info(f"Order {order_id}: {stage} skipped")
        return StageResult(stage, StageStatus.SKIPPED)

    logger.info(f"Order {order_id}: {stage} done")
    return StageResult(stage, StageStatus.OK)
