"""口令哈希与校验。"""

import base64
import binascii
from functools import lru_cache
import hashlib
import hmac
import secrets

from rfi_api.core.config import get_settings

_ALGORITHM = "pbkdf2_sha256"


def hash_password(password: str, *, iterations: int | None = None) -> str:
    """使用 PBKDF2-SHA256 生成口令哈希。"""
    rounds = iterations or get_settings().auth_password_hash_iterations
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    salt_b64 = base64.b64encode(salt).decode("ascii")
    digest_b64 = base64.b64encode(digest).decode("ascii")
    return f"{_ALGORITHM}${rounds}${salt_b64}${digest_b64}"


def verify_password(password: str, password_hash: str | None) -> bool:
    """校验口令是否匹配，哈希格式非法时返回 False。"""
    if not password_hash:
        return False
    try:
        algorithm, iterations_text, salt_b64, expected_digest_b64 = password_hash.split("$", 3)
        if algorithm != _ALGORITHM:
            return False
        iterations = int(iterations_text)
        salt = base64.b64decode(salt_b64.encode("ascii"), validate=True)
        expected_digest = base64.b64decode(expected_digest_b64.encode("ascii"), validate=True)
    except (ValueError, TypeError, binascii.Error):
        return False
    if iterations <= 0:
        return False

    actual_digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(actual_digest, expected_digest)


@lru_cache
def _dummy_hash(iterations: int) -> str:
    return hash_password(secrets.token_urlsafe(16), iterations=iterations)


def burn_verification(password: str) -> None:
    """对固定哑哈希执行一次校验，使“账号不存在”与“口令错误”耗时一致。"""
    verify_password(password, _dummy_hash(get_settings().auth_password_hash_iterations))


def generate_temporary_password(length: int = 12) -> str:
    """生成管理员重新启用账号时下发的临时口令。"""
    return secrets.token_urlsafe(length)[:length]
