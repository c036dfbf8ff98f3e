"""
Event and Claim ledgers.

Every function takes an open Session; callers own the session lifecycle.
Reads are retried a few times on transient storage failures. Writes are not:
a write that may or may not have landed has to be re-checked by the caller
before it is attempted again.
"""
import functools
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .errors import ClaimConflict, StorageUnavailable
from .models import Claim, Event

logger = logging.getLogger(__name__)


def normalize_event_code(code: str) -> str:
    return code.strip().upper()


def _storage_guard(fn):
    """Translate driver-level connectivity failures into StorageUnavailable."""
    @functools.wraps(fn)
    def wrapper(db: Session, *args, **kwargs):
        try:
            return fn(db, *args, **kwargs)
        except (OperationalError, PoolTimeoutError) as e:
            db.rollback()
            logger.warning("storage failure in %s: %s", fn.__name__, e.__class__.__name__)
            raise StorageUnavailable() from e
    return wrapper


_read_retry = retry(
    retry=retry_if_exception_type(StorageUnavailable),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.05, min=0.05, max=0.5),
    reraise=True,
)


# -------------------------
# Reads
# -------------------------
@_read_retry
@_storage_guard
def get_event(db: Session, event_id: str) -> Optional[Event]:
    return db.get(Event, event_id)


@_read_retry
@_storage_guard
def get_event_by_code(db: Session, event_code: str) -> Optional[Event]:
    return db.execute(
        select(Event).where(Event.event_code == normalize_event_code(event_code))
    ).scalar_one_or_none()


@_read_retry
@_storage_guard
def find_claim(db: Session, user_address: str, event_id: str) -> Optional[Claim]:
    return db.execute(
        select(Claim).where(Claim.user_address == user_address, Claim.event_id == event_id)
    ).scalar_one_or_none()


@_read_retry
@_storage_guard
def list_claims_for_user(db: Session, user_address: str) -> List[Tuple[Claim, Optional[Event]]]:
    rows = db.execute(
        select(Claim, Event)
        .join(Event, Event.id == Claim.event_id, isouter=True)
        .where(Claim.user_address == user_address)
        .order_by(Claim.claimed_at.desc(), Claim.id.desc())
    ).all()
    return [(claim, event) for claim, event in rows]


@_read_retry
@_storage_guard
def list_events(db: Session, organizer: Optional[str] = None, limit: int = 200) -> List[Event]:
    q = select(Event)
    if organizer:
        q = q.where(Event.organizer == organizer)
    return list(db.execute(q.order_by(Event.created_at.desc()).limit(limit)).scalars().all())


# -------------------------
# Writes
# -------------------------
@_storage_guard
def create_event(db: Session, event: Event) -> Event:
    """Insert a new event. Raises IntegrityError if the event code is taken."""
    event.event_code = normalize_event_code(event.event_code)
    if event.created_at is None:
        event.created_at = datetime.now(timezone.utc)
    if event.total_claimed is None:
        event.total_claimed = 0
    db.add(event)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise
    return event


@_storage_guard
def set_contract_address(db: Session, event_id: str, contract_address: str) -> bool:
    """Set the contract address if still unset. Returns False if it was already set."""
    result = db.execute(
        update(Event)
        .where(Event.id == event_id, Event.contract_address.is_(None))
        .values(contract_address=contract_address)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


@_storage_guard
def record_claim(
    db: Session,
    event: Event,
    user_address: str,
    token_id: str,
    transaction_hash: str,
) -> Claim:
    """
    Insert the claim row and bump the event's counter in one transaction.

    The (user_address, event_id) unique constraint is the enforcement point for
    "one claim per user per event": a violation rolls the whole unit back and
    raises ClaimConflict, whatever pre-checks the caller did.
    """
    event_id = event.id
    claim = Claim(
        user_address=user_address,
        event_id=event_id,
        token_id=token_id,
        transaction_hash=transaction_hash,
        claimed_at=datetime.now(timezone.utc),
    )
    try:
        db.add(claim)
        db.flush()
        db.execute(
            update(Event)
            .where(Event.id == event_id)
            .values(total_claimed=Event.total_claimed + 1)
            .execution_options(synchronize_session=False)
        )
        total_claimed, max_supply = db.execute(
            select(Event.total_claimed, Event.max_supply).where(Event.id == event_id)
        ).one()
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ClaimConflict(f"claim exists for {user_address} on {event_id}") from e

    if max_supply is not None and total_claimed > max_supply:
        logger.warning(
            "event %s oversold: total_claimed=%s exceeds max_supply=%s",
            event_id, total_claimed, max_supply,
        )
    return claim
