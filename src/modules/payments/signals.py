"""Payment notifications.

``payment_resolved`` fires once per attempt, after the resolution and its
effect (order ``payment_ok`` or seller verification) are committed.
Receivers get ``deposit_id``, ``subject_id`` (order or seller) and
``status``.
"""

from __future__ import annotations

from django.dispatch import Signal

payment_resolved = Signal()
