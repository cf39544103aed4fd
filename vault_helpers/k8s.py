"""Authentication with Vault on Kubernetes.

Exchanges the pod's service account token for a Vault token using the
Kubernetes auth method and keeps that token in a local file.

Configuration comes from the environment:

    VAULT_ROLE                  role submitted at login
    VAULT_TOKEN_PATH            (required) file the Vault token is stored in
    VAULT_REAUTH                re-authenticate when the stored token is unusable
    VAULT_TTL                   increment for renew-self, e.g. "1h"
    VAULT_AUTH_MOUNT_PATH       mount of the auth method (default auth/kubernetes)
    SERVICE_ACCOUNT_TOKEN_PATH  service account token file
    ALLOW_FAIL                  failures are non-fatal for the caller

Example:
    auth = KubernetesAuth.from_environment()
    token = auth.get_token()
    auth.store_token(token)
    auth.use_token(token)
"""

import os
import pathlib
import tempfile
from typing import Any, Protocol

import hvac
import structlog
from pydantic import BaseModel, ConfigDict

from vault_helpers.client import VAULT_API_ERRORS, client_from_environment
from vault_helpers.duration import BadDurationError, duration_to_seconds
from vault_helpers.environ import get_env, parse_bool
from vault_helpers.exceptions import (
    ConfigParseError,
    EmptyTokenError,
    LoginError,
    LoginWarningError,
    MissingConfigError,
    TokenFileError,
    TokenRenewError,
)
from vault_helpers.renewer import TokenRenewer

logger = structlog.get_logger(__name__)

AUTH_MOUNT_PATH = "auth/kubernetes"
SERVICE_ACCOUNT_TOKEN_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/token"  # noqa: S105
TOKEN_FILE_MODE = 0o644


def fix_auth_mount_path(path: str) -> str:
    """Add the auth prefix to a mount path.

    kubernetes      -> auth/kubernetes
    auth/kubernetes -> auth/kubernetes

    Presumes a valid path.
    """
    segments = [s for s in path.lstrip("/").split("/") if s]
    if segments[:1] == ["auth"]:
        return "/".join(segments)
    return "/".join(["auth", *segments])


class LogicalWriter(Protocol):
    """The single Vault operation needed to log in."""

    def write_data(self, path: str, *, data: dict[str, Any] | None = None) -> Any: ...


class VaultSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    token_path: str
    role: str = ""
    reauth: bool = False
    ttl: int = 0
    auth_mount_path: str = AUTH_MOUNT_PATH
    service_account_token_path: str = SERVICE_ACCOUNT_TOKEN_PATH
    allow_fail: bool = False

    @classmethod
    def from_environment(cls) -> "VaultSettings":
        """Read the settings from the process environment.

        Raises:
            MissingConfigError: VAULT_TOKEN_PATH is not set
            ConfigParseError: VAULT_REAUTH, VAULT_TTL or ALLOW_FAIL is invalid
        """
        token_path = get_env("VAULT_TOKEN_PATH")
        if not token_path:
            raise MissingConfigError("VAULT_TOKEN_PATH")

        reauth = False
        if value := get_env("VAULT_REAUTH"):
            reauth = parse_bool(value, "VAULT_REAUTH")

        ttl = 0
        if value := get_env("VAULT_TTL"):
            try:
                ttl = duration_to_seconds(value)
            except BadDurationError as e:
                raise ConfigParseError(
                    f"{value} is not a valid duration for VAULT_TTL: {e}"
                ) from e

        allow_fail = False
        if value := get_env("ALLOW_FAIL"):
            allow_fail = parse_bool(value, "ALLOW_FAIL")

        return cls(
            role=get_env("VAULT_ROLE", ""),
            token_path=token_path,
            reauth=reauth,
            ttl=ttl,
            auth_mount_path=fix_auth_mount_path(
                get_env("VAULT_AUTH_MOUNT_PATH", AUTH_MOUNT_PATH)
            ),
            service_account_token_path=get_env(
                "SERVICE_ACCOUNT_TOKEN_PATH", SERVICE_ACCOUNT_TOKEN_PATH
            ),
            allow_fail=allow_fail,
        )


class KubernetesAuth:
    """Obtain and maintain a Vault token from a Kubernetes service account.

    Args:
        settings: auth settings, usually VaultSettings.from_environment()
        client: the Vault client the token is set on
        writer: login capability, defaults to the client

    The token field of the client is the only mutable state. It is not
    guarded; share one instance between threads only with external locking.
    """

    def __init__(
        self,
        settings: VaultSettings,
        client: hvac.Client,
        writer: LogicalWriter | None = None,
    ) -> None:
        self.settings = settings
        self._client = client
        self._writer = writer or client

    @classmethod
    def from_environment(cls, writer: LogicalWriter | None = None) -> "KubernetesAuth":
        return cls(
            settings=VaultSettings.from_environment(),
            client=client_from_environment(),
            writer=writer,
        )

    @property
    def client(self) -> hvac.Client:
        return self._client

    def authenticate(self) -> str:
        """Log in with the service account token and return the Vault token.

        Raises:
            TokenFileError: the service account token can not be read
            LoginError: the login call failed
            LoginWarningError: the login response carries warnings
        """
        try:
            jwt = (
                pathlib.Path(self.settings.service_account_token_path)
                .read_bytes()
                .decode("utf-8")
                .strip()
            )
        except (OSError, UnicodeDecodeError) as e:
            raise TokenFileError(f"failed to read jwt token: {e}") from e

        login_path = f"{fix_auth_mount_path(self.settings.auth_mount_path)}/login"
        logger.debug("logging in to vault", path=login_path, role=self.settings.role)
        try:
            secret = self._writer.write_data(
                login_path, data={"role": self.settings.role, "jwt": jwt}
            )
        except VAULT_API_ERRORS as e:
            raise LoginError(
                "login failed with role from environment variable VAULT_ROLE: "
                f"{self.settings.role!r}: {e}"
            ) from e

        if warnings := (secret or {}).get("warnings"):
            raise LoginWarningError(warnings)

        try:
            token = secret["auth"]["client_token"]
        except (KeyError, TypeError) as e:
            raise LoginError(f"login response for {login_path} has no token") from e

        logger.info("logged in to vault", role=self.settings.role)
        return token

    def store_token(self, token: str) -> None:
        """Write the token file.

        The token goes to a temporary file in the same directory first, which
        then replaces the token file, so readers never see a partial token.
        """
        path = pathlib.Path(self.settings.token_path)
        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                dir=path.parent, prefix=f".{path.name}.", delete=False
            ) as f:
                tmp_path = f.name
                f.write(token.encode("utf-8"))
            os.chmod(tmp_path, TOKEN_FILE_MODE)
            os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path is not None:
                pathlib.Path(tmp_path).unlink(missing_ok=True)
            raise TokenFileError(f"failed to store token: {e}") from e

    def load_token(self) -> str:
        """Read the token from the token file.

        Raises:
            TokenFileError: the file can not be read
            EmptyTokenError: the file is empty
        """
        path = pathlib.Path(self.settings.token_path)
        try:
            token = path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise TokenFileError(f"failed to load token: {e}") from e
        if not token:
            raise EmptyTokenError(path)
        return token

    def use_token(self, token: str) -> None:
        """Set the token on the client. The token is not validated."""
        self._client.token = token

    def get_token(self) -> str:
        """Return a freshly renewed token, logging in again only if needed.

        Loads the stored token and renews it. If either step fails and
        re-authentication is enabled, a new token is requested with
        authenticate(); otherwise the error propagates.
        """
        try:
            token = self.load_token()
        except TokenFileError:
            if self.settings.reauth:
                logger.info("stored token unusable, re-authenticating")
                return self.authenticate()
            raise

        self.use_token(token)
        try:
            self._renew_self()
        except TokenRenewError:
            if self.settings.reauth:
                logger.info("renewing stored token failed, re-authenticating")
                return self.authenticate()
            raise
        return token

    def new_renewer(self, token: str) -> TokenRenewer:
        """Return a TokenRenewer that keeps the given token alive.

        The renewer is not started; the caller runs it with start() and
        consumes its events.
        """
        self.use_token(token)
        secret = self._renew_self()
        return TokenRenewer(self._client, secret, increment=self.settings.ttl)

    def _renew_self(self) -> dict[str, Any]:
        try:
            secret = self._client.auth.token.renew_self(
                increment=self.settings.ttl or None
            )
        except VAULT_API_ERRORS as e:
            raise TokenRenewError(f"failed to renew token: {e}") from e
        logger.debug("renewed vault token", ttl=self.settings.ttl)
        return secret
