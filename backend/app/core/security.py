from datetime import timedelta
from typing import Optional
from jose import jwt
from fastapi.security import OAuth2PasswordBearer
import bcrypt
import logging

from app.core.config import get_settings
from app.core.errors import ConfigurationError
from app.utils.clock import utcnow

logger = logging.getLogger("reservation_portal.security")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")

def jwt_secret() -> str:
    secret = get_settings().JWT_SECRET_KEY
    if not secret:
        raise ConfigurationError("JWT_SECRET_KEY missing")
    return secret

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash using bcrypt."""
    try:
        # bcrypt only looks at the first 72 bytes
        password_bytes = plain_password.encode('utf-8')[:72]
        return bcrypt.checkpw(password_bytes, hashed_password.encode('utf-8'))
    except ValueError as e:
        logger.error(f"Password verification failed: {e}")
        return False

def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    password_bytes = password.encode('utf-8')[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt())
    return hashed.decode('utf-8')

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    settings = get_settings()
    to_encode = data.copy()
    if expires_delta:
        expire = utcnow() + expires_delta
    else:
        expire = utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, jwt_secret(), algorithm=settings.JWT_ALGORITHM)

def decode_access_token(token: str) -> dict:
    return jwt.decode(token, jwt_secret(), algorithms=[get_settings().JWT_ALGORITHM])
