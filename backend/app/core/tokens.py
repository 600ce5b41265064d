import hashlib
import hmac
import secrets
from functools import lru_cache

from app.core.config import get_settings
from app.core.errors import ConfigurationError

TOKEN_BYTES = 32  # 256 bits, base64url encoded


class TokenCodec:
    """
    Generates bearer tokens for invite links and derives their lookup hash.

    Only the HMAC-SHA256 digest of a token is ever stored. The key is fixed for
    the lifetime of the process; changing it makes every issued token unresolvable.
    """

    def __init__(self, secret: str | None):
        if not secret:
            raise ConfigurationError("INVITE_TOKEN_SECRET missing")
        self._key = secret.encode("utf-8")

    @staticmethod
    def generate_token() -> str:
        return secrets.token_urlsafe(TOKEN_BYTES)

    def hash_token(self, token: str) -> str:
        return hmac.new(self._key, token.encode("utf-8"), hashlib.sha256).hexdigest()


@lru_cache
def get_token_codec() -> TokenCodec:
    return TokenCodec(get_settings().INVITE_TOKEN_SECRET)
