"""Seller verification (subscription) use case."""

from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

import structlog
from django.db.models import F
from django.utils import timezone

from modules.orders.exceptions import ConcurrentModification
from modules.sellers.exceptions import SellerNotFound
from modules.sellers.models import Seller

logger = structlog.get_logger(__name__)


class SellerVerificationService:
    """Grants the verified-seller flag with a fixed expiry.

    The write is conditioned on the seller version read just before;
    one conflict is retried, a second one surfaces as
    ``ConcurrentModification``.
    """

    def get_seller(self, seller_id: UUID) -> Seller:
        seller = Seller.objects.filter(id=seller_id).first()
        if seller is None:
            raise SellerNotFound(f"Seller {seller_id} not found.")
        return seller

    def grant(self, seller_id: UUID, days: int) -> datetime:
        for attempt in range(2):
            seller = Seller.objects.filter(id=seller_id).first()
            if seller is None:
                raise SellerNotFound(f"Seller {seller_id} not found.")

            now = timezone.now()
            base = (
                seller.verified_until
                if seller.verified_until and seller.verified_until > now
                else now
            )
            until = base + timedelta(days=days)
            updated = Seller.objects.filter(id=seller_id, version=seller.version).update(
                is_verified=True,
                verified_until=until,
                version=F("version") + 1,
                updated_at=now,
            )
            if updated:
                logger.info(
                    "seller.verification_granted",
                    seller_id=str(seller_id),
                    verified_until=until.isoformat(),
                )
                return until
            logger.warning(
                "seller.verification_conflict", seller_id=str(seller_id), attempt=attempt + 1
            )
        raise ConcurrentModification(f"Seller {seller_id} changed concurrently.")
