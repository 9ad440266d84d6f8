from types import TracebackType
from typing import Any, Union

from . import common

__all__ = (
    "AIOFTPSException",
    "StatusCodeError",
    "UnexpectedReply",
    "InvalidCredentials",
    "InvalidPath",
    "AlreadyConnected",
    "NotConnected",
    "ConnectionClosed",
    "UntrustedCertificate",
    "ProtocolViolation",
    "MalformedListing",
    "PathIOError",
)


class AIOFTPSException(Exception):
    """
    Base exception class.
    """


class StatusCodeError(AIOFTPSException):
    """
    Raised for unexpected or "bad" status codes.

    :param expected_codes: tuple of expected codes or expected code
    :type expected_codes: :py:class:`tuple` of :py:class:`int` or
        :py:class:`int`

    :param received_code: received code
    :type received_code: :py:class:`int`

    :param info: server message text
    :type info: :py:class:`str`

    ::

        >>> try:
        ...     # something with aioftps
        ... except StatusCodeError as e:
        ...     print(e.expected_codes, e.received_code, e.info)
        ...     # analyze state

    `expected_codes` is a tuple, even for one code.
    """

    def __init__(
        self,
        expected_codes: Union[tuple[int, ...], int],
        received_code: int,
        info: str,
    ) -> None:
        super().__init__(
            f"Waiting for {expected_codes} but got {received_code} {info!r}",
        )
        self.expected_codes: tuple[int, ...] = common.wrap_with_container(expected_codes)
        self.received_code = received_code
        self.info = info


class UnexpectedReply(StatusCodeError):
    """
    Raised when a protocol step receives a reply code other than the one
    it requires (greeting, PASV, STOR/RETR open, transfer completion, QUIT).
    """


class InvalidCredentials(StatusCodeError):
    """
    Raised when the server rejects the password.
    """


class InvalidPath(StatusCodeError):
    """
    Raised when the server refuses to change into a directory.
    """


class AlreadyConnected(AIOFTPSException):
    """
    Raised on connect attempt while the control connection is alive.
    """


class NotConnected(AIOFTPSException):
    """
    Raised on any command attempt without control connection.
    """


class ConnectionClosed(AIOFTPSException, ConnectionResetError):
    """
    Raised when a read pass on the control connection gave no reply at all
    """


class UntrustedCertificate(AIOFTPSException):
    """
    Raised when the certificate callback rejects the server certificate.
    """


class ProtocolViolation(AIOFTPSException, ValueError):
    """
    Raised when a server reply can not be decoded (e.g. `PASV` tuple).
    """


class MalformedListing(AIOFTPSException, ValueError):
    """
    Raised when a `MLSD` line misses a required fact or has a broken one.
    """


ExcInfo = tuple[type[BaseException], BaseException, TracebackType]
OptExcInfo = Union[ExcInfo, tuple[None, None, None]]


class PathIOError(AIOFTPSException):
    """
    Universal exception for any path io errors.

    ::

        >>> try:
        ...     # some client path operation
        ... except PathIOError as exc:
        ...     type, value, traceback = exc.reason
        ...     if isinstance(value, SomeException):
        ...         # handle
        ...     elif ...
        ...         # handle
    """

    def __init__(self, *args: Any, reason: Union[OptExcInfo, None] = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.reason = reason
