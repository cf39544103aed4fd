import logging
import sys

import click
import structlog

from vault_helpers.exceptions import VaultHelperError
from vault_helpers.k8s import KubernetesAuth
from vault_helpers.renewer import ERROR, RENEWED, TokenRenewer

logger = structlog.get_logger(__name__)


class ExitCodes:
    SUCCESS = 0
    ERROR = 1


def init_log_level(log_level: str) -> None:
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level)
        ),
    )


def run_renewer(auth: KubernetesAuth, renewer: TokenRenewer) -> int:
    """Store every renewed token until the lease ends. Returns the exit code."""
    with renewer:
        while True:
            event = renewer.events.get()
            if event.kind == RENEWED:
                auth.store_token(event.secret["auth"]["client_token"])
                continue
            if event.kind == ERROR:
                logger.error("token renewal stopped", error=str(event.error))
                return ExitCodes.ERROR
            logger.info("token lease expired")
            return ExitCodes.SUCCESS


@click.command()
@click.option(
    "--log-level",
    help="log-level of the command. Defaults to INFO.",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    default="INFO",
)
@click.option(
    "--force-login",
    is_flag=True,
    help="log in with the service account token even if a stored token exists.",
)
@click.option(
    "--renew",
    is_flag=True,
    help="keep renewing the token and store it after every renewal.",
)
def login(log_level: str, force_login: bool, renew: bool) -> None:
    """Get a Vault token with the Kubernetes auth method and store it in
    VAULT_TOKEN_PATH. Failures exit with 0 if ALLOW_FAIL is set."""
    init_log_level(log_level)

    try:
        auth = KubernetesAuth.from_environment()
    except VaultHelperError as e:
        logger.error("invalid configuration", error=str(e))
        sys.exit(ExitCodes.ERROR)

    failure_code = (
        ExitCodes.SUCCESS if auth.settings.allow_fail else ExitCodes.ERROR
    )
    code = ExitCodes.SUCCESS
    try:
        token = auth.authenticate() if force_login else auth.get_token()
        auth.store_token(token)
        logger.info("stored vault token", path=auth.settings.token_path)
        if renew:
            code = run_renewer(auth, auth.new_renewer(token))
    except VaultHelperError as e:
        logger.error("failed to get vault token", error=str(e))
        code = ExitCodes.ERROR

    sys.exit(failure_code if code == ExitCodes.ERROR else code)
