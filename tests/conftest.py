"""Global test configuration for vault_helpers tests."""

from collections.abc import Callable, Mapping
from typing import Any
from unittest.mock import MagicMock

import pytest

VAULT_ENV = [
    "VAULT_ROLE",
    "VAULT_TOKEN_PATH",
    "VAULT_REAUTH",
    "VAULT_TTL",
    "VAULT_AUTH_MOUNT_PATH",
    "SERVICE_ACCOUNT_TOKEN_PATH",
    "ALLOW_FAIL",
    "VAULT_ADDR",
    "VAULT_TOKEN",
    "VAULT_NAMESPACE",
    "VAULT_CACERT",
    "VAULT_CLIENT_CERT",
    "VAULT_CLIENT_KEY",
    "VAULT_SKIP_VERIFY",
    "VAULT_CLIENT_TIMEOUT",
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Tests never see Vault settings of the calling shell."""
    for name in VAULT_ENV:
        monkeypatch.delenv(name, raising=False)


class FakeVault:
    """In-memory stand-in for the parts of hvac.Client used by the helpers.

    Behaves like the Vault logical API: KV v2 mounts only answer below
    their data/ and metadata/ sub-paths, unknown paths read as None.
    """

    def __init__(self, mounts: Mapping[str, Mapping[str, Any]]) -> None:
        self.mounts = dict(mounts)
        self.storage: dict[str, dict[str, Any]] = {}
        self.token: str | None = None
        self.sys = MagicMock()
        self.sys.list_mounted_secrets_engines.side_effect = lambda: {
            "request_id": "1",
            "data": dict(self.mounts),
        }
        self.auth = MagicMock()

    def _locate(self, path: str, sub_path: str) -> str | None:
        path = path.strip("/")
        matches = [m for m in self.mounts if f"{path}/".startswith(m)]
        if not matches:
            return None
        mount = max(matches, key=len)
        rest = path[len(mount) :] if len(path) >= len(mount) else ""
        if (self.mounts[mount].get("options") or {}).get("version") == "2":
            if rest != sub_path and not rest.startswith(f"{sub_path}/"):
                return None
            rest = rest[len(sub_path) + 1 :]
        return f"{mount}{rest}".rstrip("/")

    def _is_v2(self, key: str) -> bool:
        matches = [m for m in self.mounts if key.startswith(m)]
        mount = max(matches, key=len)
        return (self.mounts[mount].get("options") or {}).get("version") == "2"

    def read(self, path: str) -> dict[str, Any] | None:
        key = self._locate(path, "data")
        if key is None or key not in self.storage:
            return None
        data = self.storage[key]
        if self._is_v2(key):
            return {"data": {"data": dict(data), "metadata": {"version": 1}}}
        return {"data": dict(data)}

    def write_data(self, path: str, *, data: dict[str, Any] | None = None) -> None:
        key = self._locate(path, "data")
        if key is None:
            raise AssertionError(f"write to unsupported path {path}")
        payload = data or {}
        self.storage[key] = dict(payload["data"] if self._is_v2(key) else payload)

    def list(self, path: str) -> dict[str, Any] | None:
        key = self._locate(path, "metadata")
        if key is None:
            return None
        prefix = f"{key}/"
        keys = set()
        for stored in self.storage:
            if stored.startswith(prefix):
                head, sep, _ = stored[len(prefix) :].partition("/")
                keys.add(head + sep)
        if not keys:
            return None
        return {"data": {"keys": sorted(keys)}}

    def delete(self, path: str) -> None:
        key = self._locate(path, "data")
        if key is not None:
            self.storage.pop(key, None)


KV_V1_MOUNTS = {
    "secret/": {"type": "kv", "options": {"version": "1"}},
    "cubbyhole/": {"type": "cubbyhole", "options": None},
}
KV_V2_MOUNTS = {
    "secret/": {"type": "kv", "options": {"version": "2"}},
    "cubbyhole/": {"type": "cubbyhole", "options": None},
}


@pytest.fixture
def fake_vault_factory() -> Callable[[Mapping[str, Mapping[str, Any]]], FakeVault]:
    return FakeVault


@pytest.fixture(params=[KV_V1_MOUNTS, KV_V2_MOUNTS], ids=["kv-v1", "kv-v2"])
def fake_vault(request: pytest.FixtureRequest) -> FakeVault:
    return FakeVault(request.param)
