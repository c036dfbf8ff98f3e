"""
Claim orchestration: authorize a mint, then record it once it lands on-chain.

    authorize(eventCode, user)  ->  {contractAddress, signature, nonce, ...}
        read-only; every gate short-circuits with a ClaimError

    record(eventId, user, txHash, tokenId)  ->  {stamp, transaction}
        inserts the Claim and bumps Event.total_claimed as one unit

Authorize never mutates either ledger, so a user can ask for as many
authorizations as their wallet needs. Only a reported transaction moves the
counters.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.orm import Session, sessionmaker
from web3 import Web3

from . import ledger
from .db import write_session
from .errors import (
    AlreadyClaimed,
    AlreadyRecorded,
    ClaimConflict,
    ClaimingClosed,
    ClaimingNotYetOpen,
    ContractNotDeployed,
    EventNotFound,
    InvalidInput,
    ServerMisconfigured,
    SignerError,
    SoldOut,
)
from .models import Claim, Event
from .signer import SignerService, is_hex_address

logger = logging.getLogger(__name__)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes; everything is stored as UTC
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    dt = as_utc(dt)
    return dt.isoformat() if dt else None


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def normalize_address(address) -> str:
    if _blank(address) or not isinstance(address, str) or not is_hex_address(address.strip()):
        raise InvalidInput("userAddress must be a valid Ethereum address")
    return Web3.to_checksum_address(address.strip())


def event_data(event: Event) -> dict:
    return {
        "name": event.name,
        "description": event.description,
        "imageUrl": event.image_url,
        "eventDate": to_iso(event.event_date),
        "organizer": event.organizer,
    }


def stamp_view(claim: Claim, event: Event) -> dict:
    """The ChronoStamp projection of a claim joined with its event."""
    return {
        "id": claim.id,
        "tokenId": claim.token_id,
        "eventName": event.name,
        "description": event.description,
        "imageUrl": event.image_url,
        "contractAddress": event.contract_address,
        "claimedAt": to_iso(claim.claimed_at),
        "eventDate": to_iso(event.event_date),
        "organizer": event.organizer,
    }


class ClaimService:
    def __init__(
        self,
        session_factory: sessionmaker,
        signer: SignerService,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.session_factory = session_factory
        self.signer = signer
        self.clock = clock

    # -------------------------
    # Authorize
    # -------------------------
    def authorize(self, event_code: Optional[str], user_address: Optional[str]) -> dict:
        if _blank(event_code) or _blank(user_address):
            raise InvalidInput("eventCode and userAddress are required")
        user = normalize_address(user_address)

        db: Session = self.session_factory()
        try:
            event = ledger.get_event_by_code(db, event_code)
            if event is None:
                raise EventNotFound(f'No event found with code: {event_code}')

            if ledger.find_claim(db, user, event.id) is not None:
                raise AlreadyClaimed()

            if event.max_supply is not None and event.total_claimed >= event.max_supply:
                raise SoldOut()

            if not event.contract_address:
                raise ContractNotDeployed()

            self._check_claim_window(event)
        finally:
            db.close()

        if not self.signer.validate_config():
            raise ServerMisconfigured()

        nonce = self.signer.generate_nonce()
        try:
            signature = self.signer.sign_message(user, nonce)
        except SignerError as e:
            logger.error("signing failed for event %s: %s", event.id, e.__class__.__name__)
            raise ServerMisconfigured() from e

        logger.info("authorized claim event=%s user=%s", event.id, user)
        return {
            "contractAddress": event.contract_address,
            "signature": signature,
            "nonce": nonce,
            "userAddress": user,
            "eventCode": event.event_code,
            "eventName": event.name,
            "eventId": event.id,
            "eventData": event_data(event),
        }

    def _check_claim_window(self, event: Event) -> None:
        now = as_utc(self.clock())
        start = as_utc(event.claim_start_time)
        end = as_utc(event.claim_end_time)
        if start is not None and now < start:
            raise ClaimingNotYetOpen(f"Claiming opens at {start.isoformat()}")
        if end is not None and now > end:
            raise ClaimingClosed(f"Claiming closed at {end.isoformat()}")

    # -------------------------
    # Record
    # -------------------------
    def record(
        self,
        event_id: Optional[str],
        user_address: Optional[str],
        transaction_hash: Optional[str],
        token_id,
        block_number: Optional[int] = None,
        gas_used: Optional[int] = None,
    ) -> dict:
        if any(_blank(v) for v in (event_id, user_address, transaction_hash, token_id)):
            raise InvalidInput("eventId, userAddress, transactionHash, and tokenId are required")
        user = normalize_address(user_address)
        token_id = str(token_id).strip()

        db: Session = write_session(self.session_factory)
        try:
            event = ledger.get_event(db, event_id)
            if event is None:
                raise EventNotFound(f"No event found with id: {event_id}")

            # Fast path only; the unique constraint below is what actually decides.
            if ledger.find_claim(db, user, event.id) is not None:
                raise AlreadyRecorded()

            try:
                claim = ledger.record_claim(db, event, user, token_id, transaction_hash)
            except ClaimConflict:
                logger.info("concurrent record lost the race event=%s user=%s", event.id, user)
                raise AlreadyRecorded()
        finally:
            db.close()

        logger.info("recorded claim id=%s event=%s user=%s tx=%s", claim.id, event.id, user, transaction_hash)
        return {
            "stamp": stamp_view(claim, event),
            "transaction": {
                "hash": transaction_hash,
                "blockNumber": block_number or 0,
                "gasUsed": gas_used or 0,
            },
        }

    # -------------------------
    # Query
    # -------------------------
    def get_user_claims(self, user_address: Optional[str]) -> List[dict]:
        user = normalize_address(user_address)
        db: Session = self.session_factory()
        try:
            rows = ledger.list_claims_for_user(db, user)
        finally:
            db.close()

        stamps = []
        for claim, event in rows:
            if event is None:
                logger.debug("claim %s references missing event %s; omitted", claim.id, claim.event_id)
                continue
            stamps.append(stamp_view(claim, event))
        return stamps
