# Copyright Vespa.ai. Licensed under the terms of the Apache 2.0 license. See LICENSE in the project root.

from typing import Any, Optional


class VespaError(Exception):
    """Base class for all errors raised by vespakit."""


class InvalidArgumentError(VespaError, ValueError):
    """A value object or aggregate was constructed with a missing or ill-typed attribute."""


class DeploymentTimeoutError(VespaError, TimeoutError):
    def __init__(self, message: str, waited: int) -> None:
        super().__init__(message)
        self.waited = waited


class DeploymentCancelledError(VespaError):
    def __init__(self, message: str, waited: int) -> None:
        super().__init__(message)
        self.waited = waited


class UpstreamError(VespaError):
    """
    The cluster answered with a non-success status code.

    Args:
        status_code (int): HTTP status code of the response.
        url (str): URL of the request.
        body (Any): Decoded JSON body of the response, or the raw text when it is not JSON.
    """

    def __init__(self, status_code: int, url: str, body: Any = None) -> None:
        super().__init__(
            "Request to {} failed, code: {}, message: {}".format(url, status_code, body)
        )
        self.status_code = status_code
        self.url = url
        self.body = body


class TransportError(VespaError, ConnectionError):
    def __init__(self, url: str, cause: Optional[BaseException] = None) -> None:
        super().__init__("Could not connect to {}: {}".format(url, cause))
        self.url = url


class ContainerNotFoundError(VespaError, LookupError):
    """No container with the given name or id exists."""
