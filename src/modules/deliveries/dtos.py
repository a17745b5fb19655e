"""Delivery use-case results."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from modules.deliveries.constants import CANDIDATES_FOUND, NO_DRIVERS_IN_RANGE
from modules.drivers.dtos import DriverCandidate
from modules.orders.dtos import OrderSnapshot


class CandidateSearchResult(BaseModel):
    """Outcome of a driver search; an empty list is not an error."""

    model_config = ConfigDict(frozen=True)

    outcome: str
    radius_km: float
    candidates: List[DriverCandidate]

    @classmethod
    def of(cls, candidates: List[DriverCandidate], radius_km: float) -> CandidateSearchResult:
        return cls(
            outcome=CANDIDATES_FOUND if candidates else NO_DRIVERS_IN_RANGE,
            radius_km=radius_km,
            candidates=candidates,
        )

    @property
    def is_empty(self) -> bool:
        return self.outcome == NO_DRIVERS_IN_RANGE


class AssignmentResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    order: OrderSnapshot
    delivery_id: UUID
    driver_id: Optional[UUID]
    deposit_id: Optional[str]
    requires_prepayment: bool
    amount_owed: int


class ProofResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    order: OrderSnapshot
    image_url: str
    signature_url: str
