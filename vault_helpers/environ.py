import os

from vault_helpers.exceptions import ConfigParseError

TRUE_VALUES = ("1", "t", "T", "TRUE", "true", "True")
FALSE_VALUES = ("0", "f", "F", "FALSE", "false", "False")


def get_env(name: str, default: str | None = None) -> str | None:
    """Return an environment variable, treating an empty value as unset."""
    return os.environ.get(name) or default


def parse_bool(value: str, name: str) -> bool:
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    valid = ", ".join(TRUE_VALUES + FALSE_VALUES)
    raise ConfigParseError(
        f"invalid value {value!r} for {name}: {valid} are valid values for {name}"
    )
