"""
Exception taxonomy shared by the resolver, dispatcher and HTTP layer.

Every failure raised while handling a request belongs to one of these classes
so the API can pick a status code without inspecting messages:

- InvalidArgumentError: malformed or inconsistent caller input (400)
- UnprocessableDocumentError: well-formed input the document cannot satisfy (422)
- ToolkitError: the external invoice toolkit failed to run or crashed (500)
"""

from __future__ import annotations

GENERIC_ERROR_MESSAGE = "Unexpected error"


class InvalidArgumentError(ValueError):
    """Caller input is unknown, missing or inconsistent."""


class UnprocessableDocumentError(RuntimeError):
    """The request is valid but the uploaded document lacks required content."""


class ToolkitError(RuntimeError):
    """The invoice toolkit could not be executed or reported a failure."""


def error_message(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or GENERIC_ERROR_MESSAGE
