"""Exception hierarchy shared by the resource façades and the build goals."""

from __future__ import annotations


class AzureToolkitError(Exception):
    """Base class for every error raised by az-toolkit."""


class AzureExecutionError(AzureToolkitError):
    """An operation could not be carried out (failed precondition, bad state)."""


class InvalidInputError(AzureExecutionError):
    """A required value supplied in batch mode did not pass validation."""


class AzureToolkitAuthenticationError(AzureToolkitError):
    """The account is not signed in or has no subscriptions."""


class CommandError(AzureToolkitError):
    """An external command exited with a failure."""


class AzureApiError(AzureToolkitError):
    """A non-success response from ARM or a service data plane."""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: str | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.url = url

    def __str__(self) -> str:
        prefix = f"[{self.status_code}]"
        if self.code:
            prefix += f" {self.code}:"
        return f"{prefix} {self.message}"

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404
