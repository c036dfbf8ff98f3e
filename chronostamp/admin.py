import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from web3 import Web3

from . import ledger
from .claims import as_utc, to_iso
from .db import write_session
from .errors import (
    ContractAlreadySet,
    EventCodeTaken,
    EventNotFound,
    Forbidden,
    InvalidInput,
    Unauthorized,
)
from .models import AuditLog, Event
from .security import verify_organizer_token
from .signer import is_hex_address

router = APIRouter(tags=["organizer"])

DEFAULT_IMAGE_URL = "https://images.unsplash.com/photo-1540575467063-178a50c2df87?w=500&h=500&fit=crop"
MAX_SUPPLY_LIMIT = 1_000_000


# -------------------------
# Helpers
# -------------------------
def _gen_event_id() -> str:
    return f"event_{uuid.uuid4().hex[:12]}"


def _same_address(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.lower() == b.lower()


def _checksum_or_invalid(address: str, field: str) -> str:
    if not is_hex_address(address):
        raise InvalidInput(f"{field} must be a valid Ethereum address")
    return Web3.to_checksum_address(address)


def event_view(e: Event) -> dict:
    view = {
        "id": e.id,
        "name": e.name,
        "description": e.description,
        "imageUrl": e.image_url,
        "contractAddress": e.contract_address,
        "eventCode": e.event_code,
        "organizer": e.organizer,
        "createdAt": to_iso(e.created_at),
        "eventDate": to_iso(e.event_date),
        "claimStartTime": to_iso(e.claim_start_time),
        "claimEndTime": to_iso(e.claim_end_time),
        "totalClaimed": e.total_claimed,
        "maxSupply": e.max_supply,
    }
    if e.metadata_ipfs_hash:
        view["metadataIpfsHash"] = e.metadata_ipfs_hash
        view["metadataUrl"] = f"ipfs://{e.metadata_ipfs_hash}"
    return view


def require_organizer(request: Request, authorization: Optional[str] = Header(default=None)) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise Unauthorized()
    token = authorization.split(" ", 1)[1].strip()
    try:
        payload = verify_organizer_token(token, request.app.state.settings.organizer_token_secret)
    except ValueError as e:
        raise Unauthorized("Organizer token expired" if str(e) == "EXPIRED" else None)
    sub = payload["sub"]
    return Web3.to_checksum_address(sub) if is_hex_address(sub) else sub


# -------------------------
# Event APIs
# -------------------------
class CreateEventReq(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    description: str
    event_code: str
    image_url: Optional[str] = None
    event_date: Optional[datetime] = None
    max_supply: Optional[int] = None
    contract_address: Optional[str] = None
    claim_start_time: Optional[datetime] = None
    claim_end_time: Optional[datetime] = None
    metadata_ipfs_hash: Optional[str] = None


class SetContractReq(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    contract_address: str


@router.post("/events")
def create_event(req: CreateEventReq, request: Request, organizer: str = Depends(require_organizer)):
    if not req.name.strip() or not req.description.strip() or not req.event_code.strip():
        raise InvalidInput("name, description and eventCode are required")
    if req.max_supply is not None and (req.max_supply < 1 or req.max_supply > MAX_SUPPLY_LIMIT):
        raise InvalidInput(f"maxSupply must be between 1 and {MAX_SUPPLY_LIMIT}, or omitted for no cap")
    start, end = as_utc(req.claim_start_time), as_utc(req.claim_end_time)
    if start and end and start > end:
        raise InvalidInput("claimStartTime must not be after claimEndTime")

    contract_address = None
    if req.contract_address:
        contract_address = _checksum_or_invalid(req.contract_address, "contractAddress")

    event = Event(
        id=_gen_event_id(),
        name=req.name.strip(),
        description=req.description.strip(),
        image_url=req.image_url or DEFAULT_IMAGE_URL,
        contract_address=contract_address,
        event_code=req.event_code,
        organizer=organizer,
        event_date=as_utc(req.event_date) or datetime.now(timezone.utc) + timedelta(days=30),
        claim_start_time=start,
        claim_end_time=end,
        total_claimed=0,
        max_supply=req.max_supply,
        metadata_ipfs_hash=req.metadata_ipfs_hash,
    )

    db = write_session(request.app.state.session_factory)
    try:
        if ledger.get_event_by_code(db, req.event_code) is not None:
            raise EventCodeTaken(f"Event with code {ledger.normalize_event_code(req.event_code)} already exists")
        try:
            ledger.create_event(db, event)
        except IntegrityError:
            raise EventCodeTaken()
        return {"success": True, "data": event_view(event), "message": "Event created successfully"}
    finally:
        db.close()


@router.get("/events")
def list_events(request: Request, organizer: Optional[str] = None, limit: int = 200):
    db = request.app.state.session_factory()
    try:
        if organizer and is_hex_address(organizer):
            organizer = Web3.to_checksum_address(organizer)
        rows = ledger.list_events(db, organizer=organizer, limit=limit)
        data = [event_view(e) for e in rows]
        return {"success": True, "data": data, "total": len(data)}
    finally:
        db.close()


@router.get("/events/{event_id}")
def get_event(event_id: str, request: Request):
    db = request.app.state.session_factory()
    try:
        e = ledger.get_event(db, event_id)
        if e is None:
            raise EventNotFound(f"No event found with ID: {event_id}")

        view = event_view(e)
        view["stats"] = {
            "totalClaimed": e.total_claimed,
            "maxSupply": e.max_supply,
            "remainingSupply": max(e.max_supply - e.total_claimed, 0) if e.max_supply else None,
            "claimRate": round(e.total_claimed / e.max_supply * 100) if e.max_supply else None,
        }
        return {"success": True, "data": view}
    finally:
        db.close()


@router.post("/events/{event_id}/contract")
def set_contract(event_id: str, req: SetContractReq, request: Request, organizer: str = Depends(require_organizer)):
    contract_address = _checksum_or_invalid(req.contract_address, "contractAddress")

    db = write_session(request.app.state.session_factory)
    try:
        e = ledger.get_event(db, event_id)
        if e is None:
            raise EventNotFound(f"No event found with ID: {event_id}")
        if not _same_address(e.organizer, organizer):
            raise Forbidden()
        if not ledger.set_contract_address(db, event_id, contract_address):
            raise ContractAlreadySet()
        e.contract_address = contract_address
        return {"success": True, "data": event_view(e), "message": "Contract address set"}
    finally:
        db.close()


# -------------------------
# Logs
# -------------------------
@router.get("/admin/audit")
def get_audit(
    request: Request,
    limit: int = 80,
    event_id: Optional[str] = None,
    organizer: str = Depends(require_organizer),
):
    db = request.app.state.session_factory()
    try:
        q = (
            select(AuditLog, Event)
            .join(Event, Event.id == AuditLog.event_id)
            .where(Event.organizer == organizer)
        )
        if event_id:
            q = q.where(AuditLog.event_id == event_id)
        rows = db.execute(q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)).all()

        out = []
        for log, ev in rows:
            out.append({
                "created_at": to_iso(log.created_at),
                "action": log.action,
                "event_id": log.event_id,
                "event_name": ev.name,
                "user_address": log.user_address,
                "status": log.status,
                "reason_code": log.reason_code,
                "decision_id": log.decision_id,
            })
        return out
    finally:
        db.close()
