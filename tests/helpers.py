import time
from datetime import datetime, timedelta, timezone

from eth_account import Account
from sqlalchemy import func, select

from chronostamp import ledger
from chronostamp.models import Claim, Event
from chronostamp.security import mint_organizer_token

DEV_KEY = "0x" + "11" * 32
PROD_KEY = "0x" + "22" * 32
TOKEN_SECRET = "test_organizer_secret"

USER = Account.from_key("0x" + "33" * 32).address
OTHER_USER = Account.from_key("0x" + "44" * 32).address
ORGANIZER = Account.from_key("0x" + "55" * 32).address
CONTRACT = "0x" + "12" * 20


def seed_event(app, code="DEVCONF2024", **overrides) -> str:
    fields = dict(
        id=f"event_{code.lower()}",
        name="DevConf 2024",
        description="The premier developer conference.",
        image_url="https://example.com/devconf.png",
        contract_address=CONTRACT,
        event_code=code,
        organizer=ORGANIZER,
        event_date=datetime(2024, 3, 15, tzinfo=timezone.utc),
        total_claimed=0,
        max_supply=500,
    )
    fields.update(overrides)
    db = app.state.session_factory()
    try:
        ledger.create_event(db, Event(**fields))
        return fields["id"]
    finally:
        db.close()


def load_event(app, event_id: str) -> Event:
    db = app.state.session_factory()
    try:
        return db.get(Event, event_id)
    finally:
        db.close()


def count_claims(app, event_id: str) -> int:
    db = app.state.session_factory()
    try:
        return db.execute(select(func.count()).select_from(Claim).where(Claim.event_id == event_id)).scalar_one()
    finally:
        db.close()


def hours(n: float) -> timedelta:
    return timedelta(hours=n)


def organizer_headers(organizer: str = ORGANIZER, ttl_minutes: int = 60) -> dict:
    return {"Authorization": f"Bearer {mint_organizer_token(organizer, TOKEN_SECRET, ttl_minutes)}"}


async def authorize(client, event_code="DEVCONF2024", user=USER):
    return await client.post("/claim", json={"eventCode": event_code, "userAddress": user})


async def record(client, event_id, user=USER, tx="0x" + "ab" * 32, token_id="7", headers=None):
    body = {"eventId": event_id, "userAddress": user, "transactionHash": tx, "tokenId": token_id}
    return await client.post("/claim/record", json=body, headers=headers or {})


class InMemoryRedis:
    """Just enough of redis.asyncio.Redis (decode_responses=True) for the rate limiter and idempotency cache."""

    def __init__(self):
        self.values = {}
        self.hashes = {}
        self.expiry = {}

    def _alive(self, key):
        exp = self.expiry.get(key)
        if exp is not None and exp < time.time():
            self.values.pop(key, None)
            self.hashes.pop(key, None)
            self.expiry.pop(key, None)

    async def get(self, key):
        self._alive(key)
        return self.values.get(key)

    async def set(self, key, value, nx=False, ex=None):
        self._alive(key)
        if nx and key in self.values:
            return None
        self.values[key] = value
        if ex is not None:
            self.expiry[key] = time.time() + ex
        else:
            self.expiry.pop(key, None)
        return True

    async def delete(self, key):
        self._alive(key)
        existed = key in self.values or key in self.hashes
        self.values.pop(key, None)
        self.hashes.pop(key, None)
        self.expiry.pop(key, None)
        return int(existed)

    async def hgetall(self, key):
        self._alive(key)
        return dict(self.hashes.get(key, {}))

    async def hset(self, key, mapping):
        self.hashes.setdefault(key, {}).update({k: str(v) for k, v in mapping.items()})

    async def expire(self, key, ttl):
        self.expiry[key] = time.time() + ttl

    async def aclose(self):
        pass
