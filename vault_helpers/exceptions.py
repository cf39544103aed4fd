from typing import Any


class VaultHelperError(Exception):
    pass


class ConfigError(VaultHelperError):
    pass


class ConfigParseError(ConfigError):
    pass


class MissingConfigError(ConfigError):
    def __init__(self, name: str) -> None:
        super().__init__(f"missing {name}")
        self.name = name


class VaultClientError(VaultHelperError):
    pass


class TokenFileError(VaultHelperError):
    pass


class EmptyTokenError(TokenFileError):
    def __init__(self, path: Any) -> None:
        super().__init__(f"found empty token in {path}")
        self.path = path


class VaultRequestError(VaultHelperError):
    pass


class SecretAccessForbidden(VaultRequestError):
    pass


class LoginError(VaultRequestError):
    pass


class LoginWarningError(LoginError):
    def __init__(self, warnings: list[str]) -> None:
        super().__init__("login failed with: " + " - ".join(warnings))
        self.warnings = warnings


class TokenRenewError(VaultRequestError):
    pass


class RenewerError(VaultHelperError):
    pass


class MountError(VaultHelperError):
    pass


class NoMountFoundError(MountError):
    def __init__(self, path: str) -> None:
        super().__init__(f"no mount found for path: {path}")
        self.path = path


class MountTypeError(MountError):
    def __init__(self, mount: str, path: str, mount_type: str) -> None:
        super().__init__(
            f"matching mount {mount} for path {path} is not of type kv "
            f"(found {mount_type!r})"
        )
        self.mount = mount
        self.path = path
        self.mount_type = mount_type


class MountVersionError(MountError):
    pass


class KVPathError(VaultHelperError):
    pass


class SecretNotFound(VaultHelperError):
    pass
