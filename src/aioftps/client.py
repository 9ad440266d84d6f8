import asyncio
import contextlib
import enum
import logging
import re
import ssl
import sys
from collections.abc import AsyncGenerator
from pathlib import Path, PurePosixPath
from types import TracebackType
from typing import Any, Callable, TypedDict, Union

from . import errors, pathio
from .common import (
    DEFAULT_BLOCK_SIZE,
    DEFAULT_PASSWORD,
    DEFAULT_PORT,
    DEFAULT_USER,
    END_OF_LINE,
    StreamIO,
    async_enterable,
    wrap_with_container,
)
from .parsers import DirectoryEntry, PassiveAddress, parse_mlsd_line
from .reply import Reply, ReplyReader

if sys.version_info >= (3, 11):
    from typing import Self, Unpack
else:
    from typing_extensions import Self, Unpack


__all__ = (
    "BaseClient",
    "Client",
    "DataConnectionStreamIO",
    "SessionState",
)
logger = logging.getLogger(__name__)

CertificateCallback = Callable[[bytes], bool]
PathLike = Union[str, PurePosixPath]
LocalPathLike = Union[str, Path]


class SessionState(enum.Enum):
    disconnected = "disconnected"
    # control connection is open, login is not finished yet
    connected = "connected"
    ready = "ready"


def accept_all_context() -> ssl.SSLContext:
    """
    TLS client context which trusts any server certificate.
    """
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class DataConnectionStreamIO(StreamIO):
    """
    Add `finish` method to :py:class:`aioftps.StreamIO`, which is
    specific for data connection. This requires `client`.

    :param client: client class, which have :py:meth:`aioftps.Client.command`
    :type client: :py:class:`aioftps.BaseClient`

    :param *args: positional arguments passed to
        :py:class:`aioftps.StreamIO`

    :param **kwargs: keyword arguments passed to
        :py:class:`aioftps.StreamIO`
    """

    def __init__(self, client: "BaseClient", *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.client = client

    async def finish(self, expected_codes: Union[int, tuple[int, ...]] = 226) -> None:
        """
        :py:func:`asyncio.coroutine`

        Close connection and wait for `expected_codes` response from server.
        The reply is read only after the data connection is closed.

        :param expected_codes: tuple of expected codes or expected code
        :type expected_codes: :py:class:`tuple` of :py:class:`int` or
            :py:class:`int`
        """
        self.close()
        await self.wait_closed()
        await self.client.command(None, expected_codes)

    async def __aexit__(
        self,
        exc_type: Union[type[BaseException], None],
        exc: Union[BaseException, None],
        tb: Union[TracebackType, None],
    ) -> None:
        if exc is None:
            await self.finish()
        else:
            self.close()


class ClientArgs(TypedDict, total=False):
    socket_timeout: Union[float, int, None]
    read_timeout: Union[float, int, None]
    write_timeout: Union[float, int, None]
    connection_timeout: Union[float, int, None]
    path_timeout: Union[float, int, None]
    path_io_factory: type[pathio.AbstractPathIO[Any]]
    encoding: str
    sslcontext: Union[ssl.SSLContext, None]
    verify_certificate: Union[CertificateCallback, None]
    block_size: int


class BaseClient:
    def __init__(
        self,
        *,
        socket_timeout: Union[float, int, None] = None,
        read_timeout: Union[float, int, None] = None,
        write_timeout: Union[float, int, None] = None,
        connection_timeout: Union[float, int, None] = None,
        path_timeout: Union[float, int, None] = None,
        path_io_factory: type[pathio.AbstractPathIO[Any]] = pathio.PathIO,
        encoding: str = "ascii",
        sslcontext: Union[ssl.SSLContext, None] = None,
        verify_certificate: Union[CertificateCallback, None] = None,
        block_size: int = DEFAULT_BLOCK_SIZE,
    ):
        self.read_timeout = read_timeout or socket_timeout
        self.write_timeout = write_timeout or socket_timeout
        self.connection_timeout = connection_timeout
        self.path_io = path_io_factory(timeout=path_timeout)
        self.encoding = encoding
        self.sslcontext = sslcontext
        self.verify_certificate = verify_certificate
        self.block_size = block_size
        self.state = SessionState.disconnected
        self._stream: Union[StreamIO, None] = None
        self._replies: Union[ReplyReader, None] = None

    def _check_certificate(self, writer: asyncio.StreamWriter) -> None:
        if self.verify_certificate is None:
            return
        ssl_object = writer.get_extra_info("ssl_object")
        certificate = ssl_object.getpeercert(binary_form=True)
        if not self.verify_certificate(certificate):
            raise errors.UntrustedCertificate(
                f"certificate of {self.server_host}:{self.server_port} rejected",
            )

    async def connect(self, host: str, port: int = DEFAULT_PORT) -> None:
        """
        :py:func:`asyncio.coroutine`

        Open control connection and make TLS handshake.
        """
        if self.state is not SessionState.disconnected:
            raise errors.AlreadyConnected(
                f"already connected to {self.server_host}:{self.server_port}",
            )
        self.server_host = host
        self.server_port = port
        sslcontext = self.sslcontext or accept_all_context()
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port, ssl=sslcontext, server_hostname=host),
            self.connection_timeout,
        )
        try:
            self._check_certificate(writer)
        except Exception:
            writer.close()
            raise
        logger.debug("connected to %s:%s", host, port)
        self._stream = StreamIO(
            reader,
            writer,
            read_timeout=self.read_timeout,
            write_timeout=self.write_timeout,
        )
        self._replies = ReplyReader(self._stream, encoding=self.encoding)
        self.state = SessionState.connected

    @property
    def stream(self) -> StreamIO:
        if self._stream is None:
            raise errors.NotConnected("Connect first")
        return self._stream

    @property
    def replies(self) -> ReplyReader:
        if self._replies is None:
            raise errors.NotConnected("Connect first")
        return self._replies

    def check_connected(self) -> None:
        if self.state is SessionState.disconnected:
            raise errors.NotConnected("Connect first")

    def close(self) -> None:
        """
        Close connection.
        """
        if self._stream is not None:
            self._stream.close()
        self._stream = None
        self._replies = None
        self.state = SessionState.disconnected

    async def command(
        self,
        command: Union[str, None] = None,
        expected_codes: Union[int, tuple[int, ...]] = (),
        *,
        error: type[errors.StatusCodeError] = errors.UnexpectedReply,
        censor_after: Union[int, None] = None,
    ) -> Reply:
        """
        :py:func:`asyncio.coroutine`

        Basic command logic.

        1. Send command if not omitted.
        2. Take exactly one reply.
        3. Check code for expected.

        :param command: command line
        :type command: :py:class:`str`

        :param expected_codes: tuple of expected codes or expected code, any
            code passes if empty
        :type expected_codes: :py:class:`tuple` of :py:class:`int` or
            :py:class:`int`

        :param error: exception class raised on code mismatch
        :type error: subclass of :py:class:`aioftps.StatusCodeError`

        :param censor_after: index after which the line should be censored
            when logging
        :type censor_after: :py:class:`None` or :py:class:`int`
        """
        expected_codes = wrap_with_container(expected_codes)
        stream = self.stream
        if command:
            if censor_after:
                # Censor the user's command
                raw = command[:censor_after]
                stars = "*" * len(command[censor_after:])
                logger.debug("%s%s", raw, stars)
            else:
                logger.debug(command)
            message = command + END_OF_LINE
            await stream.write(message.encode(encoding=self.encoding, errors="replace"))
        reply = await self.replies.next_reply()
        if expected_codes and reply.code not in expected_codes:
            raise error(expected_codes, reply.code, reply.message)
        return reply

    async def get_passive_connection(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        """
        :py:func:`asyncio.coroutine`

        Send `PASV` and open plain (not encrypted) connection to announced
        address.

        :rtype: (:py:class:`asyncio.StreamReader`,
            :py:class:`asyncio.StreamWriter`)
        """
        reply = await self.command("PASV", 227)
        host, port = PassiveAddress.parse(reply)
        logger.debug("data connection to %s:%s", host, port)
        connection: tuple[asyncio.StreamReader, asyncio.StreamWriter] = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            self.connection_timeout,
        )
        return connection

    @async_enterable
    async def get_stream(
        self,
        command: str,
        expected_codes: Union[int, tuple[int, ...]] = (),
    ) -> DataConnectionStreamIO:
        """
        :py:func:`asyncio.coroutine`

        Create :py:class:`aioftps.DataConnectionStreamIO` for straight
        read/write io. Data connection is opened before `command` is sent
        and closed if the reply does not match `expected_codes`.

        :param command: transfer command line
        :type command: :py:class:`str`

        :param expected_codes: tuple of expected codes or expected code
        :type expected_codes: :py:class:`tuple` of :py:class:`int` or
            :py:class:`int`

        :rtype: :py:class:`aioftps.DataConnectionStreamIO`
        """
        reader, writer = await self.get_passive_connection()
        stream = DataConnectionStreamIO(
            self,
            reader,
            writer,
            read_timeout=self.read_timeout,
            write_timeout=self.write_timeout,
        )
        try:
            await self.command(command, expected_codes)
        except Exception:
            stream.close()
            raise
        return stream


class Client(BaseClient):
    """
    FTP over TLS client. Control connection is encrypted from the very
    start, data connections are plain TCP in passive mode.

    :param socket_timeout: timeout for read and write operations
    :type socket_timeout: :py:class:`float`, :py:class:`int` or `None`

    :param read_timeout: timeout for read operations, overrides
        `socket_timeout`
    :type read_timeout: :py:class:`float`, :py:class:`int` or `None`

    :param write_timeout: timeout for write operations, overrides
        `socket_timeout`
    :type write_timeout: :py:class:`float`, :py:class:`int` or `None`

    :param connection_timeout: timeout for connection
    :type connection_timeout: :py:class:`float`, :py:class:`int` or `None`

    :param path_timeout: timeout for local file operations
    :type path_timeout: :py:class:`float`, :py:class:`int` or
        :py:class:`None`

    :param path_io_factory: factory of «path abstract layer»
    :type path_io_factory: :py:class:`aioftps.AbstractPathIO`

    :param encoding: encoding of control connection, characters it can't
        encode are sent as "?"
    :type encoding: :py:class:`str`

    :param sslcontext: context for control connection. If omitted, any
        server certificate is accepted
    :type sslcontext: :py:class:`ssl.SSLContext`

    :param verify_certificate: callable, which receive server certificate
        in DER form after handshake and returns `False` to reject it
    :type verify_certificate: callable

    :param block_size: block size for file transfers
    :type block_size: :py:class:`int`
    """

    async def connect(  # type: ignore[override]
        self,
        host: str,
        port: int = DEFAULT_PORT,
        user: str = DEFAULT_USER,
        password: str = DEFAULT_PASSWORD,
    ) -> list[str]:
        """
        :py:func:`asyncio.coroutine`

        Connect to server, read greeting, login and go to root directory.
        Connection is closed if any of these steps fails.
        With a read timeout, greeting lines are taken until the server stays
        silent for that timeout. Without one, only greeting lines already
        received with the first one are taken.

        :param host: host name for connection
        :type host: :py:class:`str`

        :param port: port number for connection
        :type port: :py:class:`int`

        :param user: username
        :type user: :py:class:`str`

        :param password: password
        :type password: :py:class:`str`

        :return: greeting messages
        :rtype: :py:class:`list` of :py:class:`str`
        """
        await super().connect(host, port)
        try:
            reply = await self.command(None, 220)
            info = [reply.message]
            while await self._greeting_pending():
                reply = await self.command(None, 220)
                info.append(reply.message)
            await self.login(user, password)
            await self.change_directory("/")
        except Exception:
            self.close()
            raise
        self.state = SessionState.ready
        return info

    async def _greeting_pending(self) -> bool:
        # a read pass only ends on its own when reads can time out
        if self.read_timeout is None:
            return self.replies.pending > 0
        return await self.replies.has_pending()

    async def login(self, user: str = DEFAULT_USER, password: str = DEFAULT_PASSWORD) -> None:
        """
        :py:func:`asyncio.coroutine`

        Server authentication. Password is sent only if server asks for it
        with `331`, any other reply to `USER` ends the login as is.

        :param user: username
        :type user: :py:class:`str`

        :param password: password
        :type password: :py:class:`str`

        :raises aioftps.InvalidCredentials: if password is not accepted
        """
        self.check_connected()
        reply = await self.command("USER " + user)
        if reply.code == 331:
            await self.command(
                "PASS " + password,
                230,
                error=errors.InvalidCredentials,
                censor_after=5,
            )

    async def change_directory(self, path: PathLike) -> None:
        """
        :py:func:`asyncio.coroutine`

        Change current directory.

        :param path: new directory
        :type path: :py:class:`str` or :py:class:`pathlib.PurePosixPath`

        :raises aioftps.InvalidPath: if server refuses the path
        """
        self.check_connected()
        await self.command("CWD " + str(path), 250, error=errors.InvalidPath)

    async def quit(self) -> None:
        """
        :py:func:`asyncio.coroutine`

        Send "QUIT" and close connection. Connection is closed even if the
        reply is not `221`.
        """
        self.check_connected()
        try:
            await self.command("QUIT", 221)
        finally:
            self.close()

    def upload_stream(self, destination: PathLike) -> Any:
        """
        Create stream for write data to `destination` file.

        :param destination: destination path of file on server side
        :type destination: :py:class:`str` or :py:class:`pathlib.PurePosixPath`

        :rtype: :py:class:`aioftps.DataConnectionStreamIO`
        """
        return self.get_stream("STOR " + str(destination), 150)

    def download_stream(self, source: PathLike) -> Any:
        """
        Create stream for read data from `source` file.

        :param source: source path of file on server side
        :type source: :py:class:`str` or :py:class:`pathlib.PurePosixPath`

        :rtype: :py:class:`aioftps.DataConnectionStreamIO`
        """
        return self.get_stream("RETR " + str(source), 150)

    async def upload(
        self,
        source: LocalPathLike,
        destination: PathLike,
        *,
        block_size: Union[int, None] = None,
    ) -> None:
        """
        :py:func:`asyncio.coroutine`

        Upload local file.

        :param source: source path of file on client side
        :type source: :py:class:`str` or :py:class:`pathlib.Path`

        :param destination: destination path of file on server side
        :type destination: :py:class:`str` or :py:class:`pathlib.PurePosixPath`

        :param block_size: block size for transaction
        :type block_size: :py:class:`int`
        """
        self.check_connected()
        block_size = block_size or self.block_size
        async with self.path_io.open(Path(source), mode="rb") as file_in, self.upload_stream(destination) as stream:
            async for block in file_in.iter_by_block(block_size):
                await stream.write(block)

    async def download(
        self,
        source: PathLike,
        destination: LocalPathLike,
        *,
        block_size: Union[int, None] = None,
    ) -> None:
        """
        :py:func:`asyncio.coroutine`

        Download remote file. Local file is created or truncated only after
        server agreed to send it.

        :param source: source path of file on server side
        :type source: :py:class:`str` or :py:class:`pathlib.PurePosixPath`

        :param destination: destination path of file on client side
        :type destination: :py:class:`str` or :py:class:`pathlib.Path`

        :param block_size: block size for transaction
        :type block_size: :py:class:`int`
        """
        self.check_connected()
        block_size = block_size or self.block_size
        async with (
            self.download_stream(source) as stream,
            self.path_io.open(Path(destination), mode="wb") as file_out,
        ):
            async for block in stream.iter_by_block(block_size):
                await file_out.write(block)

    async def list(self) -> list[DirectoryEntry]:
        """
        :py:func:`asyncio.coroutine`

        List current directory with `MLSD`. Entries keep server order.

        :rtype: :py:class:`list` of :py:class:`aioftps.DirectoryEntry`

        :raises aioftps.MalformedListing: if some line can't be parsed,
            the transfer itself is completed at this point

        ::

            >>> for entry in await client.list():
            ...     print(entry.name, entry.type, entry.size)
        """
        self.check_connected()
        blocks = []
        async with self.get_stream("MLSD") as stream:
            async for block in stream.iter_by_block(self.block_size):
                blocks.append(block)
        text = b"".join(blocks).decode(encoding=self.encoding, errors="replace")
        return [parse_mlsd_line(line) for line in re.split("[\r\n]", text) if line]

    @classmethod
    @contextlib.asynccontextmanager
    async def context(
        cls,
        host: str,
        port: int = DEFAULT_PORT,
        user: str = DEFAULT_USER,
        password: str = DEFAULT_PASSWORD,
        **kwargs: Unpack[ClientArgs],
    ) -> AsyncGenerator[Self, None]:
        """
        Classmethod async context manager. This create
        :py:class:`aioftps.Client`, make async call to
        :py:meth:`aioftps.Client.connect` on enter and
        :py:meth:`aioftps.Client.quit` on exit.

        :param host: host name for connection
        :type host: :py:class:`str`

        :param port: port number for connection
        :type port: :py:class:`int`

        :param user: username
        :type user: :py:class:`str`

        :param password: password
        :type password: :py:class:`str`

        :param **kwargs: keyword arguments, which passed to
            :py:class:`aioftps.Client`

        ::

            >>> async with aioftps.Client.context("127.0.0.1") as client:
            ...     # do
        """
        client = cls(**kwargs)
        await client.connect(host, port, user, password)
        try:
            yield client
        finally:
            await client.quit()
