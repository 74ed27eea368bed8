"""Data models for autopilot runs and per-product QC state."""

from dataclasses import dataclass, field, asdict
from typing import Optional

RUN_RUNNING = "running"
RUN_AWAITING_QC = "awaiting_qc"
RUN_STOPPED = "stopped"

# Products in these states are picked up by the next batch
CLAIMABLE_QC_STATES = ("draft", "failed")


@dataclass
class AutopilotRun:
    id: int
    batch_id: str
    status: str = RUN_RUNNING  # 'running' | 'awaiting_qc' | 'stopped'
    batch_size: int = 30
    current_batch: int = 0
    processed_cards: int = 0
    total_cards: int = 0
    last_error: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "AutopilotRun":
        return cls(**{k: row[k] for k in row.keys() if k in cls.__dataclass_fields__})

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ProductQCState:
    product_id: int
    # 'draft' | 'generating' | 'generated' | 'failed' | 'ready' | 'needs_review' | 'blocked'
    qc_status: str = "draft"
    confidence: Optional[int] = None
    flags: dict = field(default_factory=dict)
    batch_number: Optional[int] = None


@dataclass
class BatchOutcome:
    status: str
    processed: int = 0
    errors: int = 0
    batch_number: Optional[int] = None
    message: str = ""
