from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError
from datetime import datetime, timedelta, timezone

ALGORITHM = "HS256"


def mint_organizer_token(organizer: str, secret: str, ttl_minutes: int = 60) -> str:
    exp = int((datetime.now(timezone.utc) + timedelta(minutes=ttl_minutes)).timestamp())
    payload = {"sub": organizer, "role": "organizer", "exp": exp}
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def verify_organizer_token(token: str, secret: str) -> dict:
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise ValueError("EXPIRED")
    except JWTError:
        raise ValueError("INVALID_TOKEN")

    now = datetime.now(timezone.utc).timestamp()
    exp = payload.get("exp")
    if exp is None or now > float(exp):
        raise ValueError("EXPIRED")

    if not payload.get("sub") or payload.get("role") != "organizer":
        raise ValueError("INVALID_TOKEN")

    return payload
