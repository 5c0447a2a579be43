import hashlib
import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings

logger = logging.getLogger(__name__)

# Account passwords and link passwords share one bcrypt context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

TOKEN_TYPE = "access"

def _bcrypt_input(secret: str) -> str:
    """
    Bcrypt only reads the first 72 bytes.
    Pre-hash with SHA-256 so long passphrases stay fully significant.
    """
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()

def hash_password(password: str) -> str:
    return pwd_context.hash(_bcrypt_input(password))

def verify_password(password: str, password_hash: str | None) -> bool:
    # passlib compares digests in constant time
    if not password_hash:
        return False
    try:
        return pwd_context.verify(_bcrypt_input(password), password_hash)
    except ValueError:
        # stored value is not a hash passlib recognises
        logger.warning("password_hash_unrecognised")
        return False

# Compared against when the email is unknown, so login timing does not reveal accounts
_DUMMY_HASH = hash_password("no-such-account")

def verify_password_or_dummy(password: str, password_hash: str | None) -> bool:
    if password_hash is None:
        pwd_context.verify(_bcrypt_input(password), _DUMMY_HASH)
        return False
    return verify_password(password, password_hash)

def create_access_token(subject: str) -> str:
    # subject = the account id as a string
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=settings.jwt_access_ttl_min)
    payload = {
        "sub": subject,
        "typ": TOKEN_TYPE,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_alg)

def decode_token(token: str) -> dict:
    """Returns the token payload; raises JWTError if invalid, expired or not an access token."""
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_alg])
    if payload.get("typ") != TOKEN_TYPE:
        raise JWTError("not an access token")
    return payload
