"""
Per-item outcomes for best-effort batch operations.

Batches run items sequentially and keep going when one fails; these records
make the individual outcomes visible to the caller.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from finance_backend.app.core.exceptions import AppException


@dataclass
class BatchItemResult:
    id: int
    success: bool
    error_code: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls, item_id: int, message: Optional[str] = None) -> "BatchItemResult":
        return cls(id=item_id, success=True, message=message)

    @classmethod
    def from_error(cls, item_id: int, exc: AppException) -> "BatchItemResult":
        return cls(id=item_id, success=False, error_code=exc.error_code, message=exc.message)


@dataclass
class BatchResult:
    items: List[BatchItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> List[int]:
        return [item.id for item in self.items if item.success]

    @property
    def failed(self) -> List[int]:
        return [item.id for item in self.items if not item.success]


@dataclass
class GenerationReport:
    """
    Outcome of a settlement generation run.

    `created` holds Settlement rows; `skipped` and `failed` hold one record
    per target, keyed by the target id.
    """
    created: list = field(default_factory=list)
    skipped: List[BatchItemResult] = field(default_factory=list)
    failed: List[BatchItemResult] = field(default_factory=list)


@dataclass
class SettlementDetail:
    settlement: object
    target_name: str = ""
