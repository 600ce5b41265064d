import re
import pytest
from app.core.errors import ConfigurationError
from app.core.tokens import TokenCodec

def test_generated_tokens_are_urlsafe_and_long():
    token = TokenCodec.generate_token()
    assert re.fullmatch(r"[A-Za-z0-9_-]+", token)
    # 32 random bytes -> 43 base64url characters
    assert len(token) >= 43

def test_hash_is_deterministic(codec):
    token = codec.generate_token()
    assert codec.hash_token(token) == codec.hash_token(token)
    assert codec.hash_token("foo") == codec.hash_token("foo")

def test_hash_is_fixed_length_hex(codec):
    digest = codec.hash_token("foo")
    assert re.fullmatch(r"[0-9a-f]{64}", digest)
    assert digest != "foo"

def test_hash_depends_on_secret():
    assert TokenCodec("secret-a").hash_token("foo") != TokenCodec("secret-b").hash_token("foo")

def test_ten_thousand_tokens_have_distinct_hashes(codec):
    hashes = {codec.hash_token(codec.generate_token()) for _ in range(10_000)}
    assert len(hashes) == 10_000

@pytest.mark.parametrize("secret", [None, ""])
def test_missing_secret_fails_fast(secret):
    with pytest.raises(ConfigurationError):
        TokenCodec(secret)
