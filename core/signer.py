"""
Request Signer

Generic keyed-HMAC authentication shared by all exchange drivers.

Every exchange signs requests the same way in principle:

    1. build a canonical payload from the request (path, nonce, parameters)
    2. HMAC it with the API secret using some hash algorithm
    3. encode the digest (hex or base64) for a header or query parameter

Only the three choices differ per exchange, so a RequestSigner is configured
with {algorithm, payload builder, output encoding} instead of each driver
reimplementing the protocol.

Observed variants:
    - Kraken:  HMAC-SHA512 over path + SHA256(nonce + body), base64, secret is base64
    - Gemini:  HMAC-SHA384 over base64(JSON payload), hex
    - Binance: HMAC-SHA256 over the query string, hex
    - Liqui:   HMAC-SHA512 over the POST body, hex

Usage:
    signer = RequestSigner("sha512", path_hashed_payload, encoding="base64",
                           secret_decoder=base64.b64decode)
    signed = signer.sign_request(credentials, "kraken", path, nonce, body)
    headers = {"API-Key": credentials.api_key, "API-Sign": signed.signature}
"""

import base64
import binascii
import hashlib
import hmac
import json
from typing import Any, Callable, Dict, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.errors import CredentialsMissingError, FormatError

HEX = "hex"
BASE64 = "base64"


class Credentials(BaseModel):
    """API key material for one exchange account."""

    api_key: str = Field(default="", description="Public API key")
    api_secret: str = Field(default="", description="API secret used as HMAC key")
    client_id: str = Field(default="", description="Client/customer id (some exchanges)")

    model_config = ConfigDict(frozen=True)

    @property
    def configured(self) -> bool:
        return bool(self.api_key) and bool(self.api_secret)

    def require(self, exchange: Optional[str] = None) -> None:
        """
        Ensure key and secret are set.

        Raises:
            CredentialsMissingError: If either is empty
        """
        if not self.configured:
            raise CredentialsMissingError(exchange)

    def __repr__(self) -> str:
        # Never leak the secret into logs
        return f"Credentials(api_key={'***' if self.api_key else ''!r}, configured={self.configured})"

    __str__ = __repr__


class SignedPayload(NamedTuple):
    payload: bytes
    signature: str


# ============================================
# Primitives
# ============================================

def get_hmac(algorithm: str, data: bytes, key: bytes) -> bytes:
    """Keyed HMAC digest of data using a hashlib algorithm name."""
    return hmac.new(key, data, algorithm).digest()


def encode_digest(digest: bytes, encoding: str) -> str:
    """Encode a digest for transport ("hex" or "base64")."""
    if encoding == HEX:
        return digest.hex()
    if encoding == BASE64:
        return base64.b64encode(digest).decode("ascii")
    raise ValueError(f"Unsupported signature encoding: {encoding}")


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    return str(value).encode("utf-8")


# ============================================
# Payload strategies
# ============================================

def path_hashed_payload(path: str, nonce: Any, encoded_params: str) -> bytes:
    """
    path + SHA256(nonce + encoded_params)

    encoded_params is the exact URL-encoded body that will be sent,
    including the nonce parameter itself.
    """
    inner = hashlib.sha256(_to_bytes(nonce) + _to_bytes(encoded_params)).digest()
    return _to_bytes(path) + inner


def base64_json_payload(request: Dict[str, Any]) -> bytes:
    """base64 of the compact, key-sorted JSON encoding of request."""
    encoded = json.dumps(request, separators=(",", ":"), sort_keys=True)
    return base64.b64encode(encoded.encode("utf-8"))


def query_string_payload(encoded_params: str) -> bytes:
    """The URL-encoded query string or body itself."""
    return _to_bytes(encoded_params)


def base64_secret(secret: str) -> bytes:
    """Decode a base64 API secret."""
    try:
        return base64.b64decode(secret, validate=True)
    except (binascii.Error, ValueError) as e:
        raise FormatError("API secret is not valid base64") from e


# ============================================
# Signer
# ============================================

class RequestSigner:
    """
    HMAC request signer parameterized by algorithm, payload and encoding.

    Args:
        algorithm: hashlib algorithm name ("sha256", "sha384", "sha512")
        payload_builder: Builds the canonical payload bytes from request parts
        encoding: Output encoding of the digest ("hex" or "base64")
        secret_decoder: Turns the configured secret into HMAC key bytes
                        (default: UTF-8 encode)

    Raises:
        ValueError: If the algorithm or encoding is not supported
    """

    def __init__(
        self,
        algorithm: str,
        payload_builder: Callable[..., bytes],
        encoding: str = HEX,
        secret_decoder: Optional[Callable[[str], bytes]] = None,
    ):
        if algorithm not in hashlib.algorithms_available:
            raise ValueError(f"Unsupported hash algorithm: {algorithm}")
        if encoding not in (HEX, BASE64):
            raise ValueError(f"Unsupported signature encoding: {encoding}")

        self.algorithm = algorithm
        self.payload_builder = payload_builder
        self.encoding = encoding
        self.secret_decoder = secret_decoder or (lambda s: s.encode("utf-8"))

    def build_payload(self, *args, **kwargs) -> bytes:
        return self.payload_builder(*args, **kwargs)

    def sign(self, secret: str, payload: bytes) -> str:
        """HMAC payload with secret and encode the digest."""
        key = self.secret_decoder(secret)
        return encode_digest(get_hmac(self.algorithm, payload, key), self.encoding)

    def sign_request(self, credentials: Credentials, exchange: Optional[str], *args, **kwargs) -> SignedPayload:
        """
        Check credentials, build the payload and sign it.

        Raises:
            CredentialsMissingError: If key or secret is not configured
        """
        credentials.require(exchange)
        payload = self.build_payload(*args, **kwargs)
        return SignedPayload(payload, self.sign(credentials.api_secret, payload))

    def __repr__(self) -> str:
        return f"<RequestSigner(algorithm='{self.algorithm}', encoding='{self.encoding}')>"
