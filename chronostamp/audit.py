import logging
from typing import Optional

from .models import AuditLog

logger = logging.getLogger(__name__)


def write_audit(
    session_factory,
    decision_id: str,
    action: str,
    ip: str,
    ua: str,
    event_id: Optional[str],
    user_address: Optional[str],
    status: str,
    reason: str,
) -> None:
    """Audit rows are a side channel; losing one must not fail the request."""
    db = session_factory()
    try:
        db.add(AuditLog(
            decision_id=decision_id,
            action=action,
            ip=ip,
            user_agent=ua,
            event_id=event_id,
            user_address=user_address,
            status=status,
            reason_code=reason,
        ))
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("audit write failed decision_id=%s action=%s", decision_id, action)
    finally:
        db.close()
