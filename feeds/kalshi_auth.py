"""RSA-PSS request signing for the Kalshi trade API."""
import base64
import logging
import time
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.hazmat.primitives.serialization import load_pem_private_key

logger = logging.getLogger(__name__)

WS_SIGN_PATH = "/trade-api/ws/v2"


class KalshiAuth:
    """Signs ``timestamp_ms + METHOD + path`` with the account's RSA key."""

    def __init__(self, key_id: str, private_key: RSAPrivateKey):
        if not key_id:
            raise ValueError("KALSHI_API_KEY_ID is required to authenticate with Kalshi")
        self.key_id = key_id
        self._private_key = private_key

    @classmethod
    def from_pem(cls, key_id: str, pem: bytes) -> "KalshiAuth":
        key = load_pem_private_key(pem, password=None)
        if not isinstance(key, RSAPrivateKey):
            raise ValueError("Kalshi private key must be an RSA key")
        return cls(key_id, key)

    @classmethod
    def from_file(cls, key_id: str, path: str) -> "KalshiAuth":
        return cls.from_pem(key_id, Path(path).read_bytes())

    def sign(self, message: str) -> str:
        signature = self._private_key.sign(
            message.encode("utf-8"),
            padding.PSS(
                mgf=padding.MGF1(hashes.SHA256()),
                salt_length=padding.PSS.MAX_LENGTH,
            ),
            hashes.SHA256(),
        )
        return base64.b64encode(signature).decode("ascii")

    def headers(self, method: str, path: str, timestamp_ms: Optional[int] = None) -> dict[str, str]:
        """Auth headers for one request. The query string is not signed."""
        if timestamp_ms is None:
            timestamp_ms = int(time.time() * 1000)
        sign_path = urlparse(path).path
        message = f"{timestamp_ms}{method.upper()}{sign_path}"
        return {
            "KALSHI-ACCESS-KEY": self.key_id,
            "KALSHI-ACCESS-TIMESTAMP": str(timestamp_ms),
            "KALSHI-ACCESS-SIGNATURE": self.sign(message),
        }

    def ws_headers(self) -> dict[str, str]:
        return self.headers("GET", WS_SIGN_PATH)
