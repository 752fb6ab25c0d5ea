from datetime import datetime, timedelta, timezone
from typing import Sequence

import jwt
from jwt import InvalidTokenError

TOKEN_ISSUER = "standbook"


def create_access_token(
    *,
    user_id: int,
    secret: str,
    algorithm: str = "HS256",
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=30))
    payload = {"sub": str(user_id), "iss": TOKEN_ISSUER, "iat": now, "exp": exp}
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(
    token: str,
    *,
    secret: str,
    algorithms: Sequence[str],
) -> int:
    """Return the member id carried by a bearer token. Raises ValueError when unusable."""
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=list(algorithms),
            issuer=TOKEN_ISSUER,
            options={"require": ["sub", "exp"]},
        )
    except InvalidTokenError as exc:  # includes ExpiredSignatureError, InvalidIssuerError
        raise ValueError("invalid token") from exc

    try:
        return int(payload["sub"])
    except (TypeError, ValueError) as exc:
        raise ValueError("token sub is not an integer") from exc


def parse_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
