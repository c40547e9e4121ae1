import hashlib
import hmac
from typing import Optional


class WebhookVerifier:
    """HMAC-SHA512 signature check over the raw request body."""

    def __init__(self, secret: Optional[str], digestmod=hashlib.sha512):
        self._secret = secret.encode() if secret else b""
        self._digestmod = digestmod

    def sign(self, raw_body: bytes) -> str:
        return hmac.new(self._secret, raw_body, self._digestmod).hexdigest()

    def verify_signature(self, raw_body: bytes, signature_header: Optional[str]) -> bool:
        # an unconfigured secret never authenticates anything
        if not self._secret or not signature_header:
            return False
        # headers arrive latin-1 decoded; compare bytes so any header value is just a mismatch
        supplied = signature_header.strip().lower().encode("latin-1", "replace")
        return hmac.compare_digest(self.sign(raw_body).encode(), supplied)
