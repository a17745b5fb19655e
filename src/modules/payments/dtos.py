"""Payment reconciliation results handed to the controller and the API."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from modules.payments.constants import MANUAL_CONFIRMATION_PENDING


class ChannelHandle(BaseModel):
    """An open confirmation channel; pass it back to stop the channel."""

    model_config = ConfigDict(frozen=True)

    kind: str
    deposit_id: str
    handle_id: str
    subject_id: UUID


class DepositStarted(BaseModel):
    model_config = ConfigDict(frozen=True)

    deposit_id: str
    status: str
    progress: str
    handles: List[ChannelHandle]
    resumed: bool = False


class SmsOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    resolved: bool
    deposit_id: Optional[str] = None
    transaction_id: Optional[str] = None
    reason: Optional[str] = None


class ManualConfirmationPending(BaseModel):
    """Outcome of a manual claim: recorded, not resolved."""

    model_config = ConfigDict(frozen=True)

    confirmation_id: UUID
    deposit_id: str
    status: str
    outcome: str = MANUAL_CONFIRMATION_PENDING
