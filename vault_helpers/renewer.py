"""Background renewal of a Vault token lease.

hvac has no lease renewer of its own. TokenRenewer runs a daemon thread
that renews the client token before its lease runs out and reports every
outcome on the ``events`` queue:

    renewer = auth.new_renewer(token)
    with renewer:
        while True:
            event = renewer.events.get()
            if event.kind != RENEWED:
                break
"""

import queue
import threading
from dataclasses import dataclass
from typing import Any

import hvac
import structlog

from vault_helpers.client import VAULT_API_ERRORS
from vault_helpers.exceptions import RenewerError, TokenRenewError

logger = structlog.get_logger(__name__)

RENEWED = "renewed"
ERROR = "error"
EXPIRED = "expired"

# fraction of the lease duration to wait before renewing
RENEW_AFTER = 2 / 3
# default grace period as fraction of the initial lease duration
GRACE_FRACTION = 0.1


@dataclass(frozen=True)
class RenewalEvent:
    kind: str
    secret: dict[str, Any] | None = None
    error: Exception | None = None


def _lease_duration(secret: dict[str, Any]) -> float:
    return float((secret.get("auth") or {}).get("lease_duration") or 0)


class TokenRenewer:
    """Keep renewing a token lease until it can no longer be extended.

    Args:
        client: Vault client holding the token to renew
        secret: renew-self response carrying the initial lease
        increment: requested lease extension in seconds (0 = server default)
        grace: stop once a renewal yields a lease shorter than this many
            seconds; defaults to a tenth of the initial lease

    The loop ends after an ``error`` or ``expired`` event, or on stop().
    """

    def __init__(
        self,
        client: hvac.Client,
        secret: dict[str, Any],
        increment: int = 0,
        grace: float | None = None,
    ) -> None:
        if not isinstance(secret, dict) or not secret.get("auth"):
            raise RenewerError("failed to get token renewer: secret has no auth lease")
        self._client = client
        self._secret = secret
        self._increment = increment
        self._grace = (
            _lease_duration(secret) * GRACE_FRACTION if grace is None else grace
        )
        self.events: queue.Queue[RenewalEvent] = queue.Queue()
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    def __enter__(self) -> "TokenRenewer":
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.stop()

    @property
    def secret(self) -> dict[str, Any]:
        """The most recent renewal response."""
        return self._secret

    def start(self) -> None:
        if self._thread is not None:
            raise RenewerError("renewer already started")
        self._thread = threading.Thread(
            target=self._renew_loop, name="vault-token-renewer", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the loop has ended. Returns False on timeout."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _renew(self) -> dict[str, Any]:
        try:
            return self._client.auth.token.renew_self(
                increment=self._increment or None
            )
        except VAULT_API_ERRORS as e:
            raise TokenRenewError(f"failed to renew token: {e}") from e

    def _renew_loop(self) -> None:
        try:
            self._run()
        except Exception as e:  # noqa: BLE001
            logger.exception("token renewer stopped unexpectedly")
            self.events.put(RenewalEvent(ERROR, error=e))

    def _run(self) -> None:
        if not self._secret["auth"].get("renewable"):
            self.events.put(
                RenewalEvent(ERROR, error=RenewerError("lease is not renewable"))
            )
            return

        lease = _lease_duration(self._secret)
        while not self._stopped.is_set():
            if lease <= 0 or lease < self._grace:
                logger.info("token lease can not be extended any further", lease=lease)
                self.events.put(RenewalEvent(EXPIRED, secret=self._secret))
                return

            if self._stopped.wait(lease * RENEW_AFTER):
                return

            try:
                secret = self._renew()
            except TokenRenewError as e:
                logger.error("token renewal failed", error=str(e))
                self.events.put(RenewalEvent(ERROR, error=e))
                return

            self._secret = secret
            lease = _lease_duration(secret)
            logger.debug("renewed vault token lease", lease=lease)
            self.events.put(RenewalEvent(RENEWED, secret=secret))
