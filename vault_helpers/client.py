import hvac
import requests
import structlog
from hvac.exceptions import VaultError

from vault_helpers.duration import BadDurationError, parse_duration
from vault_helpers.environ import get_env, parse_bool
from vault_helpers.exceptions import ConfigParseError, VaultClientError

logger = structlog.get_logger(__name__)

DEFAULT_VAULT_ADDR = "https://127.0.0.1:8200"
DEFAULT_CLIENT_TIMEOUT = 60

VAULT_API_ERRORS = (VaultError, requests.exceptions.RequestException)


def client_from_environment() -> hvac.Client:
    """Create an hvac.Client from the standard Vault environment variables.

    Recognized: VAULT_ADDR, VAULT_TOKEN, VAULT_NAMESPACE, VAULT_CACERT,
    VAULT_CLIENT_CERT / VAULT_CLIENT_KEY, VAULT_SKIP_VERIFY and
    VAULT_CLIENT_TIMEOUT.

    Raises:
        VaultClientError: a variable can not be parsed or the client can
            not be created
    """
    url = get_env("VAULT_ADDR", DEFAULT_VAULT_ADDR)

    verify: bool | str = True
    try:
        if skip_verify := get_env("VAULT_SKIP_VERIFY"):
            verify = not parse_bool(skip_verify, "VAULT_SKIP_VERIFY")
        if verify and (ca_cert := get_env("VAULT_CACERT")):
            verify = ca_cert

        timeout: float = DEFAULT_CLIENT_TIMEOUT
        if client_timeout := get_env("VAULT_CLIENT_TIMEOUT"):
            try:
                timeout = parse_duration(client_timeout)
            except BadDurationError:
                # plain seconds are accepted as well
                if not client_timeout.isdigit():
                    raise
                timeout = int(client_timeout)
            if timeout <= 0:
                raise ConfigParseError(
                    f"VAULT_CLIENT_TIMEOUT must be positive, got {client_timeout!r}"
                )
    except (ConfigParseError, BadDurationError) as e:
        raise VaultClientError(f"failed to read environment for vault: {e}") from e

    cert = None
    client_cert = get_env("VAULT_CLIENT_CERT")
    client_key = get_env("VAULT_CLIENT_KEY")
    if client_cert and client_key:
        cert = (client_cert, client_key)

    try:
        client = hvac.Client(
            url=url,
            token=get_env("VAULT_TOKEN"),
            namespace=get_env("VAULT_NAMESPACE"),
            verify=verify,
            cert=cert,
            timeout=timeout,
        )
    except Exception as e:
        raise VaultClientError(f"failed to create vault client: {e}") from e

    logger.debug("created vault client", url=url)
    return client
