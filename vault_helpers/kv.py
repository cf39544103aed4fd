"""Version agnostic read, write and list of secrets in Vault KV engines.

KV version 2 serves secrets under ``<mount>/data/...`` and lists them under
``<mount>/metadata/...``, and wraps the payload in an extra ``data`` key.
KVClient detects the engine version once from the mount table and rewrites
every path, so callers always use the version 1 style path:

    kv = KVClient(client, "secret/")
    kv.write("secret/app/db", {"user": "app"})
    kv.read("secret/app/db")  # {"user": "app"}
    kv.list("secret/app/")    # ["db"]
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import hvac
import structlog
from hvac.exceptions import Forbidden

from vault_helpers.client import VAULT_API_ERRORS
from vault_helpers.exceptions import (
    KVPathError,
    MountTypeError,
    MountVersionError,
    NoMountFoundError,
    SecretAccessForbidden,
    SecretNotFound,
    VaultRequestError,
)

logger = structlog.get_logger(__name__)

KV_VERSION_1 = 1
KV_VERSION_2 = 2

READ_PREFIX = "data"
WRITE_PREFIX = READ_PREFIX
DELETE_PREFIX = READ_PREFIX
LIST_PREFIX = "metadata"


def fix_path(path: str, mount: str, prefix: str) -> str:
    """Insert the API prefix of a KV v2 engine after the mount.

    secret/foo        (mount secret/)        -> secret/data/foo
    secret/data/foo   (mount secret/)        -> secret/data/foo
    secret/foo/kv/bar (mount secret/foo/kv/) -> secret/foo/kv/data/bar

    Presumes a valid path below mount.
    """
    mount = mount.strip("/")
    rest = path.strip("/")
    if rest == mount:
        rest = ""
    elif rest.startswith(f"{mount}/"):
        rest = rest[len(mount) + 1 :]

    segments = [s for s in rest.split("/") if s]
    if segments[:1] == [prefix]:
        return path  # already v2 style path
    return "/".join([mount, prefix, *segments])


def _find_mount(path: str, mounts: Mapping[str, Any]) -> str | None:
    matches = [m for m in mounts if path.startswith(m)]
    if not matches:
        return None
    # the most specific mount wins for nested mounts
    return max(matches, key=len)


def _mount_version(mount: str, path: str, config: Mapping[str, Any]) -> int:
    mount_type = config.get("type")
    match mount_type:
        case "generic":
            return KV_VERSION_1
        case "kv":
            version = (config.get("options") or {}).get("version")
            try:
                kv_version = int(version)
            except (TypeError, ValueError):
                raise MountVersionError(
                    f"invalid version option {version!r} of kv mount {mount}"
                ) from None
            if kv_version not in {KV_VERSION_1, KV_VERSION_2}:
                raise MountVersionError(
                    f"unsupported version {kv_version} of kv mount {mount}"
                )
            return kv_version
        case _:
            raise MountTypeError(mount, path, str(mount_type))


class KVClient:
    """A KV client bound to the engine mounted below a given path.

    Args:
        client: authenticated Vault client
        path: a path long enough to determine the mount of the engine,
            e.g. ``secret/`` (``secret`` and ``/secret`` are rejected)

    Raises:
        KVPathError: the path is not usable to find a mount
        NoMountFoundError: no mount matches the path
        MountTypeError: the matching mount is not a KV engine
        MountVersionError: the KV mount has no valid version option
        VaultRequestError: the mount table can not be read

    The version and mount are resolved once. All paths passed to the client
    must be below that mount.
    """

    def __init__(self, client: hvac.Client, path: str) -> None:
        if path.startswith("/"):
            raise KVPathError(f"path {path} must not start with '/'")
        if "/" not in path:
            raise KVPathError(f"path {path} must contain at least one '/'")

        self._client = client
        mounts = self._call(
            "list mounts", path, self._client.sys.list_mounted_secrets_engines
        )
        # hvac keeps the mounts at the top level as well, "data" holds only mounts
        mounts = mounts.get("data", mounts)

        mount = _find_mount(path, mounts)
        if mount is None:
            raise NoMountFoundError(path)

        self.version = _mount_version(mount, path, mounts[mount])
        self.mount = mount.rstrip("/")
        logger.debug("resolved kv mount", mount=self.mount, version=self.version)

    @property
    def client(self) -> hvac.Client:
        return self._client

    def _call(
        self, operation: str, path: str, f: Callable, *args: Any, **kwargs: Any
    ) -> Any:
        try:
            return f(*args, **kwargs)
        except Forbidden as e:
            raise SecretAccessForbidden(
                f"permission denied accessing path '{path}'"
            ) from e
        except VAULT_API_ERRORS as e:
            raise VaultRequestError(f"{operation} failed for path '{path}': {e}") from e

    def _fix_path(self, path: str, prefix: str) -> str:
        if self.version == KV_VERSION_2:
            return fix_path(path, self.mount, prefix)
        return path

    def read(self, path: str) -> dict[str, Any]:
        """Returns the fields of the secret at path.

        Raises:
            SecretNotFound: there is no secret (or only a deleted version)
        """
        read_path = self._fix_path(path, READ_PREFIX)
        logger.debug("reading secret", path=read_path)
        secret = self._call("read", path, self._client.read, read_path)

        data = (secret or {}).get("data")
        if self.version == KV_VERSION_2 and data is not None:
            data = data.get("data")
        if data is None:
            raise SecretNotFound(path)
        return data

    def write(self, path: str, data: Mapping[str, Any]) -> None:
        write_path = self._fix_path(path, WRITE_PREFIX)
        payload = dict(data)
        if self.version == KV_VERSION_2:
            payload = {"data": payload}
        logger.debug("writing secret", path=write_path)
        self._call("write", path, self._client.write_data, write_path, data=payload)

    def list(self, path: str) -> list[str]:
        """Returns the keys below path. Folders end with '/'.

        Raises:
            SecretNotFound: nothing is stored below path
        """
        list_path = self._fix_path(path, LIST_PREFIX)
        logger.debug("listing secrets", path=list_path)
        secret = self._call("list", path, self._client.list, list_path)

        keys = ((secret or {}).get("data") or {}).get("keys")
        if keys is None:
            raise SecretNotFound(path)
        return list(keys)

    def list_all(self, path: str) -> list[str]:
        """Returns the paths of all secrets below path and its subpaths."""
        base = path.rstrip("/") + "/"
        secrets = []
        for key in self.list(base):
            secret_path = f"{base}{key}"
            if key.endswith("/"):
                secrets.extend(self.list_all(secret_path))
            else:
                secrets.append(secret_path)
        return secrets

    def delete(self, path: str) -> None:
        """Deletes a secret. On KV v2 only the latest version is deleted."""
        delete_path = self._fix_path(path, DELETE_PREFIX)
        logger.debug("deleting secret", path=delete_path)
        self._call("delete", path, self._client.delete, delete_path)
