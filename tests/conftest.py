import pytest
import pytest_asyncio
import httpx
from eth_account import Account

from chronostamp.config import Settings
from chronostamp.main import create_app
from chronostamp.signer import Environment
from tests.helpers import DEV_KEY, PROD_KEY, TOKEN_SECRET


@pytest.fixture
def settings(tmp_path):
    return Settings(
        environment=Environment.DEVELOPMENT,
        signer_keys={Environment.DEVELOPMENT: DEV_KEY, Environment.PRODUCTION: PROD_KEY},
        signer_addresses={
            Environment.DEVELOPMENT: Account.from_key(DEV_KEY).address,
            Environment.PRODUCTION: Account.from_key(PROD_KEY).address,
        },
        database_url=f"sqlite:///{tmp_path / 'chronostamp.db'}",
        db_timeout_seconds=30.0,
        organizer_token_secret=TOKEN_SECRET,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest_asyncio.fixture(scope="function")
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test", timeout=30.0) as c:
        yield c
