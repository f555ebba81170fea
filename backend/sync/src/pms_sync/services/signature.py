"""HMAC-SHA256 verification of inbound PMS webhooks.

The provider signs the exact raw request body with a shared secret and
sends the hex digest in a header (optionally prefixed with ``sha256=``).
Verification fails closed: no secret means no webhook is accepted.
"""

import hashlib
import hmac

from pms_sync.config import SyncSettings
from pms_sync.models.errors import AuthenticationError, ErrorCode
from pms_sync.services.ssm_service import SSMService, SSMServiceError, get_ssm_service
from pms_sync.utils.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_PREFIX = "sha256="


def compute_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 digest of a body, as the provider computes it."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class SignatureVerifier:
    """Authenticates webhook bodies against the shared secret."""

    def __init__(
        self,
        settings: SyncSettings,
        ssm: SSMService | None = None,
    ) -> None:
        self._settings = settings
        self._ssm = ssm
        self._secret: str | None = settings.webhook_secret

    def _resolve_secret(self) -> str | None:
        if self._secret:
            return self._secret

        parameter = self._settings.webhook_secret_parameter
        if not parameter:
            return None

        try:
            ssm = self._ssm or get_ssm_service()
            self._secret = ssm.get_parameter(parameter)
        except SSMServiceError as e:
            logger.error("Webhook secret unavailable: %s", e)
            return None
        return self._secret

    def _check(self, body: bytes, signature: str | None) -> ErrorCode | None:
        """Return None when authentic, else the reason code."""
        if not signature or not signature.strip():
            return ErrorCode.SIGNATURE_MISSING

        provided = signature.strip()

        if self._settings.signature_bypass_allowed and hmac.compare_digest(
            provided, self._settings.dev_bypass_signature or ""
        ):
            logger.warning("Webhook signature bypassed (debug, %s)", self._settings.environment)
            return None

        secret = self._resolve_secret()
        if not secret:
            return ErrorCode.SECRET_NOT_CONFIGURED

        if provided.lower().startswith(SIGNATURE_PREFIX):
            provided = provided[len(SIGNATURE_PREFIX):]

        expected = compute_signature(body, secret)
        if not hmac.compare_digest(expected, provided.lower()):
            return ErrorCode.SIGNATURE_INVALID
        return None

    def verify(self, body: bytes, signature: str | None) -> bool:
        """True only if the signature matches the body."""
        return self._check(body, signature) is None

    def require_authentic(self, body: bytes, signature: str | None) -> None:
        """Like verify(), but raises instead of returning False.

        Raises:
            AuthenticationError: With the specific rejection reason.
        """
        code = self._check(body, signature)
        if code is not None:
            logger.warning("Webhook rejected: %s", code.value)
            raise AuthenticationError(code)
