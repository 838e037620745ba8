"""Webhook signature validation for security"""
import hashlib
import hmac
import time
from typing import Optional

SIGNATURE_HEADER = "X-Referkit-Signature"
TIMESTAMP_HEADER = "X-Referkit-Timestamp"


class WebhookValidator:
    """
    Validates webhook signatures to ensure authenticity.
    Supports multiple signature schemes.
    """

    def __init__(self, secret_key: str):
        """
        Initialize with a secret key for signature validation.

        Args:
            secret_key: Shared secret key for HMAC validation
        """
        self.secret_key = secret_key.encode() if isinstance(secret_key, str) else secret_key

    def compute_signature(
        self,
        payload: bytes,
        timestamp: Optional[str] = None,
        algorithm: str = "sha256"
    ) -> str:
        """
        Compute HMAC signature for payload.

        Args:
            payload: Request body bytes
            timestamp: Optional timestamp for replay protection
            algorithm: Hash algorithm (sha256, sha512)

        Returns:
            Computed signature hex string
        """
        # Include timestamp in signature if provided
        if timestamp:
            signed_payload = f"{timestamp}.".encode() + payload
        else:
            signed_payload = payload

        if algorithm == "sha256":
            digest = hashlib.sha256
        elif algorithm == "sha512":
            digest = hashlib.sha512
        else:
            raise ValueError(f"Unsupported algorithm: {algorithm}")

        return hmac.new(self.secret_key, signed_payload, digest).hexdigest()

    def validate_signature(
        self,
        payload: bytes,
        signature: str,
        timestamp: Optional[str] = None,
        algorithm: str = "sha256",
        max_age_seconds: int = 300  # 5 minutes
    ) -> bool:
        """
        Validate webhook signature.

        Args:
            payload: Request body bytes
            signature: Signature to validate
            timestamp: Optional timestamp for replay protection
            algorithm: Hash algorithm used
            max_age_seconds: Maximum age for timestamp validation

        Returns:
            True if signature is valid, False otherwise
        """
        if timestamp:
            try:
                timestamp_int = int(timestamp)
            except (ValueError, TypeError):
                return False

            current_time = int(time.time())

            # Too old
            if current_time - timestamp_int > max_age_seconds:
                return False

            # Clock skew tolerance of one minute
            if timestamp_int - current_time > 60:
                return False

        expected_signature = self.compute_signature(payload, timestamp, algorithm)

        # Constant-time comparison to prevent timing attacks
        return hmac.compare_digest(signature, expected_signature)

    def validate_header(
        self,
        payload: bytes,
        header_value: Optional[str],
        timestamp: Optional[str] = None
    ) -> bool:
        """Validate a `sha256=<hex>` style signature header"""
        if not header_value:
            return False
        try:
            algorithm, signature = header_value.split("=", 1)
        except ValueError:
            return False
        if algorithm not in ("sha256", "sha512"):
            return False
        return self.validate_signature(payload, signature, timestamp, algorithm)
