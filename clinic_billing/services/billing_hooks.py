# FILE: clinic_billing/services/billing_hooks.py
"""
What a billing component hands back to the orchestrator: the payload,
the audit events to emit and the resource paths whose cached pages are
now stale. Nothing here is sent until the transaction has committed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

# (entity_type, entity_id, actor_id, payload)
AuditSink = Callable[[str, Any, Optional[int], Dict[str, Any]], None]
Invalidator = Callable[[List[str]], None]


@dataclass
class AuditEvent:
    entity_type: str  # invoices | payments | insurance_claims | billing_items
    entity_id: Any
    action: str  # create | update | delete
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Outcome:
    data: Any = None
    events: List[AuditEvent] = field(default_factory=list)
    affected: List[str] = field(default_factory=list)


def invoice_paths(invoice) -> List[str]:
    paths = ["/billing/invoices", f"/billing/invoices/{invoice.id}"]
    if invoice.patient_id:
        paths.append(f"/patients/{invoice.patient_id}")
    if invoice.medical_record_id:
        paths.append(f"/medical-records/{invoice.medical_record_id}")
    if invoice.appointment_id:
        paths.append(f"/appointments/{invoice.appointment_id}")
    return paths


def item_paths(item_id: Optional[int] = None) -> List[str]:
    paths = ["/billing/items"]
    if item_id is not None:
        paths.append(f"/billing/items/{item_id}")
    return paths


def log_invalidation(paths: List[str]) -> None:
    logger.debug("invalidate %s", ", ".join(paths))
