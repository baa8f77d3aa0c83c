"""JWT access-token creation and decoding.

Token claims:
  - sub:   user ID
  - role:  user role string
  - type:  "access"
  - iat:   issue timestamp (compared against per-user revocation)
  - exp:   expiry timestamp

File tokens (`type: "file"`) carry the bucket-relative object path as
`sub` and sign a download link for that one object.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from trackflow.config import settings

ALGORITHM = settings.jwt_algorithm


def create_access_token(
    user_id: str,
    role: str,
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {
        "sub": user_id,
        "role": role,
        "type": "access",
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def create_file_token(path: str, expires_delta: timedelta | None = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta or timedelta(minutes=settings.file_url_expire_minutes)
    )
    payload = {"sub": path, "type": "file", "exp": expire}
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Returns empty dict on failure."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return {}
