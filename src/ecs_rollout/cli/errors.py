"""Remote error helpers for the CLI."""

from botocore.exceptions import (
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    ProfileNotFound,
)

from ecs_rollout.cli.ui import err_console

AUTH_ERROR_CODES = {
    "ExpiredToken",
    "ExpiredTokenException",
    # spellchecker:ignore-next-line
    "UnrecognizedClientException",
    "InvalidClientTokenId",
    "InvalidSignatureException",
    "AccessDenied",
    "AccessDeniedException",
}

AUTH_HINT = (
    "If using an AWS profile/SSO, run: aws sso login --profile <profile>. "
    "If using temporary keys, refresh AWS_SESSION_TOKEN and retry."
)
ENDPOINT_HINT = "Check network connectivity and the AWS region (--region)."


def explain_remote_error(exc: BaseException) -> tuple[str, str | None]:
    """Return a headline and an optional hint for a remote failure.

    Args:
        exc: Raised exception, searched through its cause chain.

    Returns:
        The headline and a hint, or None when there is nothing to add.
    """
    if is_aws_auth_error(exc):
        return (
            "AWS authentication failed. Your credentials are missing, invalid, or expired.",
            AUTH_HINT,
        )
    if is_aws_endpoint_error(exc):
        return "Could not reach the AWS endpoint from this environment.", ENDPOINT_HINT
    return str(exc), None


def report_remote_error(exc: BaseException) -> None:
    """Print a remote failure and its hint to stderr."""
    headline, hint = explain_remote_error(exc)
    err_console.print(f"[red]{headline}[/red]")
    if hint:
        err_console.print(f"[dim]{hint}[/dim]")


def is_aws_auth_error(exc: BaseException) -> bool:
    """Return true when an exception chain indicates AWS auth issues."""
    for item in exception_chain(exc):
        if isinstance(item, (NoCredentialsError, ProfileNotFound)):
            return True
        if isinstance(item, ClientError):
            code = str(item.response.get("Error", {}).get("Code", ""))
            if code in AUTH_ERROR_CODES:
                return True
        if "security token included in the request is expired" in str(item).lower():
            return True
    return False


def is_aws_endpoint_error(exc: BaseException) -> bool:
    """Return true when an exception chain indicates endpoint/network errors."""
    return any(isinstance(item, EndpointConnectionError) for item in exception_chain(exc))


def exception_chain(exc: BaseException) -> list[BaseException]:
    """Return exceptions in cause/context chain.

    ``RemoteAPIError`` keeps the platform error on ``cause`` as well, which
    is followed like ``__cause__``.

    Args:
        exc: Root exception.

    Returns:
        Ordered exception chain from root to cause/context.
    """
    chain: list[BaseException] = []
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        chain.append(current)
        seen.add(id(current))
        current = current.__cause__ or getattr(current, "cause", None) or current.__context__
    return chain
