import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional, Union

from fastapi import BackgroundTasks, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from redis.asyncio import Redis
from starlette.concurrency import run_in_threadpool

from .admin import router as admin_router
from .audit import write_audit
from .chain import ChainVerifier, verify_claim_transaction
from .claims import ClaimService, normalize_address
from .config import Settings
from .db import Base, build_engine, build_session_factory
from .errors import ClaimError, RateLimited
from .idempotency import claim_key, release_key, set_cached_response
from .rate_limit import token_bucket
from .signer import SignerService

logger = logging.getLogger(__name__)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuthorizeReq(CamelModel):
    event_code: Optional[str] = None
    user_address: Optional[str] = None


class RecordReq(CamelModel):
    event_id: Optional[str] = None
    user_address: Optional[str] = None
    transaction_hash: Optional[str] = None
    token_id: Optional[Union[int, str]] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None


def error_body(err: ClaimError) -> dict:
    return {"success": False, "error": err.kind, "message": err.message}


def _client(request: Request):
    ip = request.client.host if request.client else "unknown"
    ua = request.headers.get("user-agent", "")
    return ip, ua


def create_app(
    settings: Optional[Settings] = None,
    signer: Optional[SignerService] = None,
    chain_verifier: Optional[ChainVerifier] = None,
    redis: Optional[Redis] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    engine = build_engine(settings.database_url, timeout=settings.db_timeout_seconds)
    Base.metadata.create_all(bind=engine)
    session_factory = build_session_factory(engine)

    signer = signer or SignerService(settings.signer_config())
    if redis is None and settings.redis_url:
        redis = Redis.from_url(settings.redis_url, decode_responses=True)
    if chain_verifier is None and settings.rpc_url:
        chain_verifier = ChainVerifier(settings.rpc_url, timeout=settings.chain_timeout_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if signer.validate_config():
            logger.info("signer ready environment=%s address=%s",
                        settings.environment.value, signer.signer_address)
        else:
            logger.error("signer misconfigured for environment=%s; claims will be refused",
                         settings.environment.value)
        yield
        signer.shutdown()
        if redis is not None:
            await redis.aclose()
        engine.dispose()

    app = FastAPI(title="ChronoStamp Claims", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.signer = signer
    app.state.claims = ClaimService(session_factory, signer)
    app.state.redis = redis
    app.state.chain_verifier = chain_verifier

    app.include_router(admin_router)

    @app.exception_handler(ClaimError)
    async def _claim_error(request: Request, exc: ClaimError):
        return JSONResponse(status_code=exc.status_code, content=error_body(exc))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        fields = sorted({".".join(str(p) for p in e.get("loc", ())[1:]) for e in exc.errors()})
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "INVALID_INPUT", "message": f"Malformed fields: {', '.join(fields)}"},
        )

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "INTERNAL_ERROR", "message": "Request failed"},
        )

    async def _audit(decision_id, action, ip, ua, event_id, user_address, status, reason):
        await run_in_threadpool(
            write_audit, session_factory, decision_id, action, ip, ua, event_id, user_address, status, reason
        )

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "chronostamp"}

    @app.get("/claim/signer")
    async def signer_health():
        info = signer.environment_info()
        return {
            "success": True,
            "data": {
                "status": "healthy",
                "environment": info["environment"],
                "signerAddress": info["signerAddress"],
                "configValid": signer.validate_config(),
                "timestamp": info["timestamp"],
            },
            "message": "Signature service is running",
        }

    @app.post("/claim")
    async def authorize_claim(req: AuthorizeReq, request: Request):
        decision_id = str(uuid.uuid4())
        ip, ua = _client(request)

        # Rate limit per client IP
        if redis is not None:
            rate = settings.authorize_rate_per_minute
            allowed = await token_bucket(redis, key=ip, capacity=rate, refill_per_sec=rate / 60)
            if not allowed:
                await _audit(decision_id, "AUTHORIZE", ip, ua, None, req.user_address, "REJECTED", RateLimited.kind)
                raise RateLimited()

        try:
            data = await run_in_threadpool(app.state.claims.authorize, req.event_code, req.user_address)
        except ClaimError as e:
            await _audit(decision_id, "AUTHORIZE", ip, ua, None, req.user_address, "REJECTED", e.kind)
            raise

        await _audit(decision_id, "AUTHORIZE", ip, ua, data["eventId"], data["userAddress"], "ACCEPTED", "OK")
        return {"success": True, "data": data, "message": "Signature generated successfully"}

    @app.post("/claim/record")
    async def record_claim(
        req: RecordReq,
        request: Request,
        background_tasks: BackgroundTasks,
        idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    ):
        decision_id = str(uuid.uuid4())
        ip, ua = _client(request)
        use_cache = redis is not None and bool(idempotency_key)

        if use_cache:
            cached = await claim_key(redis, "record", idempotency_key)
            if cached is not None:
                return JSONResponse(status_code=cached["status_code"], content=cached["body"])

        try:
            data = await run_in_threadpool(
                app.state.claims.record,
                req.event_id, req.user_address, req.transaction_hash, req.token_id,
                req.block_number, req.gas_used,
            )
        except ClaimError as e:
            body = error_body(e)
            if use_cache:
                # transient failures are worth retrying, so they are not pinned to the key
                if e.status_code < 500:
                    await set_cached_response(redis, "record", idempotency_key, e.status_code, body)
                else:
                    await release_key(redis, "record", idempotency_key)
            await _audit(decision_id, "RECORD", ip, ua, req.event_id, req.user_address, "REJECTED", e.kind)
            return JSONResponse(status_code=e.status_code, content=body)
        except Exception:
            if use_cache:
                await release_key(redis, "record", idempotency_key)
            raise

        body = {"success": True, "data": data, "message": "ChronoStamp claim recorded successfully!"}
        if use_cache:
            await set_cached_response(redis, "record", idempotency_key, 200, body)
        stamp = data["stamp"]
        user = normalize_address(req.user_address)
        await _audit(decision_id, "RECORD", ip, ua, req.event_id, user, "ACCEPTED", "OK")

        if chain_verifier is not None:
            background_tasks.add_task(
                verify_claim_transaction,
                chain_verifier, session_factory, decision_id,
                req.event_id, user, req.transaction_hash, stamp["contractAddress"],
                ip, ua,
            )
        return body

    @app.get("/claim")
    async def list_claims(address: Optional[str] = None):
        stamps = await run_in_threadpool(app.state.claims.get_user_claims, address)
        return {"success": True, "data": stamps, "total": len(stamps)}

    return app

