import asyncio
import functools
import sys
from collections.abc import Awaitable, Generator
from typing import Any, Callable, TypeVar, Union, overload

if sys.version_info >= (3, 11):
    from typing import ParamSpec, Self
else:
    from typing_extensions import ParamSpec, Self


__all__ = (
    "with_timeout",
    "StreamIO",
    "END_OF_LINE",
    "DEFAULT_BLOCK_SIZE",
    "REPLY_CHUNK_SIZE",
    "wrap_with_container",
    "AsyncStreamIterator",
    "async_enterable",
    "DEFAULT_PORT",
    "DEFAULT_USER",
    "DEFAULT_PASSWORD",
)

END_OF_LINE = "\r\n"
DEFAULT_BLOCK_SIZE = 8192
REPLY_CHUNK_SIZE = 2048

DEFAULT_PORT = 990
DEFAULT_USER = "anonymous"
DEFAULT_PASSWORD = "anon@"


WithTimeOutParamSpec = ParamSpec("WithTimeOutParamSpec")
WithTimeOutReturnType = TypeVar("WithTimeOutReturnType")


def _with_timeout(
    name: str,
) -> Callable[
    [Callable[WithTimeOutParamSpec, Awaitable[WithTimeOutReturnType]]],
    Callable[WithTimeOutParamSpec, Awaitable[WithTimeOutReturnType]],
]:
    def decorator(
        f: Callable[WithTimeOutParamSpec, Awaitable[WithTimeOutReturnType]],
    ) -> Callable[WithTimeOutParamSpec, Awaitable[WithTimeOutReturnType]]:
        @functools.wraps(f)
        async def wrapper(
            *args: WithTimeOutParamSpec.args,
            **kwargs: WithTimeOutParamSpec.kwargs,
        ) -> WithTimeOutReturnType:
            cls = args[0]
            timeout = getattr(cls, name)
            return await asyncio.wait_for(f(*args, **kwargs), timeout)

        return wrapper

    return decorator


@overload
def with_timeout(
    name: str,
) -> Callable[
    [Callable[WithTimeOutParamSpec, Awaitable[WithTimeOutReturnType]]],
    Callable[WithTimeOutParamSpec, Awaitable[WithTimeOutReturnType]],
]: ...


@overload
def with_timeout(
    name: Callable[WithTimeOutParamSpec, Awaitable[WithTimeOutReturnType]],
) -> Callable[WithTimeOutParamSpec, Awaitable[WithTimeOutReturnType]]: ...


def with_timeout(
    name: Union[str, Callable[WithTimeOutParamSpec, Awaitable[WithTimeOutReturnType]]],
) -> Union[
    Callable[
        [Callable[WithTimeOutParamSpec, Awaitable[WithTimeOutReturnType]]],
        Callable[WithTimeOutParamSpec, Awaitable[WithTimeOutReturnType]],
    ],
    Callable[WithTimeOutParamSpec, Awaitable[WithTimeOutReturnType]],
]:
    """
    Method decorator, wraps method with :py:func:`asyncio.wait_for`. `timeout`
    argument takes from `name` decorator argument or "timeout".

    :param name: name of timeout attribute
    :type name: :py:class:`str`

    :raises asyncio.TimeoutError: if coroutine does not finished in timeout

    Wait for `self.timeout`
    ::

        >>> def __init__(self, ...):
        ...
        ...     self.timeout = 1
        ...
        ... @with_timeout
        ... async def foo(self, ...):
        ...
        ...     pass

    Wait for custom timeout
    ::

        >>> def __init__(self, ...):
        ...
        ...     self.foo_timeout = 1
        ...
        ... @with_timeout("foo_timeout")
        ... async def foo(self, ...):
        ...
        ...     pass

    """

    if isinstance(name, str):
        return _with_timeout(name)
    else:
        return _with_timeout("timeout")(name)


class AsyncStreamIterator:
    def __init__(self, read_coro: Callable[[], Awaitable[bytes]]) -> None:
        self.read_coro = read_coro

    def __aiter__(self) -> Self:
        return self

    async def __anext__(self) -> bytes:
        data = await self.read_coro()
        if data:
            return data
        else:
            raise StopAsyncIteration


AsyncEnterableReturnType = TypeVar("AsyncEnterableReturnType")
AsyncEnterableParamSpec = ParamSpec("AsyncEnterableParamSpec")


def async_enterable(
    f: Callable[AsyncEnterableParamSpec, Awaitable[AsyncEnterableReturnType]],
) -> Callable[AsyncEnterableParamSpec, Any]:
    """
    Decorator. Bring coroutine result up, so it can be used as async context

    ::

        >>> @async_enterable
        ... async def foo():
        ...
        ...     ...
        ...     return AsyncContextInstance(...)
        ...
        ... async with foo() as ctx:
        ...
        ...     # do
        ...
        ... ctx = await foo()
        ... async with ctx:
        ...
        ...     # do

    """

    @functools.wraps(f)
    def wrapper(
        *args: AsyncEnterableParamSpec.args,
        **kwargs: AsyncEnterableParamSpec.kwargs,
    ) -> Any:
        class AsyncEnterableInstance:
            async def __aenter__(self) -> Any:
                self.context = await f(*args, **kwargs)
                return await self.context.__aenter__()  # type: ignore[attr-defined]

            async def __aexit__(self, *args: Any, **kwargs: Any) -> None:
                await self.context.__aexit__(*args, **kwargs)

            def __await__(self) -> Generator[None, None, AsyncEnterableReturnType]:
                return f(*args, **kwargs).__await__()  # type: ignore[attr-defined]

        return AsyncEnterableInstance()

    return wrapper


CodeType = TypeVar("CodeType", int, str)


def wrap_with_container(o: Union[CodeType, tuple[CodeType, ...]]) -> tuple[CodeType, ...]:
    if isinstance(o, (int, str)):
        return (o,)
    return tuple(o)


class StreamIO:
    """
    Stream input/output wrapper with timeout.

    :param reader: stream reader
    :type reader: :py:class:`asyncio.StreamReader`

    :param writer: stream writer
    :type writer: :py:class:`asyncio.StreamWriter`

    :param timeout: socket timeout for read/write operations
    :type timeout: :py:class:`int`, :py:class:`float` or :py:class:`None`

    :param read_timeout: socket timeout for read operations, overrides
        `timeout`
    :type read_timeout: :py:class:`int`, :py:class:`float` or :py:class:`None`

    :param write_timeout: socket timeout for write operations, overrides
        `timeout`
    :type write_timeout: :py:class:`int`, :py:class:`float` or :py:class:`None`
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        timeout: Union[float, int, None] = None,
        read_timeout: Union[float, int, None] = None,
        write_timeout: Union[float, int, None] = None,
    ):
        self.reader = reader
        self.writer = writer
        self.read_timeout = read_timeout or timeout
        self.write_timeout = write_timeout or timeout

    @with_timeout("read_timeout")
    async def read(self, count: int = -1) -> bytes:
        """
        :py:func:`asyncio.coroutine`

        Proxy for :py:meth:`asyncio.StreamReader.read`.

        :param count: block size for read operation
        :type count: :py:class:`int`
        """
        return await self.reader.read(count)

    @with_timeout("write_timeout")
    async def write(self, data: bytes) -> None:
        """
        :py:func:`asyncio.coroutine`

        Combination of :py:meth:`asyncio.StreamWriter.write` and
        :py:meth:`asyncio.StreamWriter.drain`.

        :param data: data to write
        :type data: :py:class:`bytes`
        """
        self.writer.write(data)
        await self.writer.drain()

    def close(self) -> None:
        """
        Close connection.
        """
        self.writer.close()

    @with_timeout("write_timeout")
    async def wait_closed(self) -> None:
        """
        :py:func:`asyncio.coroutine`

        Wait until buffered data is flushed and the connection is closed.
        """
        await self.writer.wait_closed()

    def get_extra_info(self, name: str, default: Any = None) -> Any:
        return self.writer.get_extra_info(name, default)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: Any) -> None:
        self.close()

    def iter_by_block(self, count: int = DEFAULT_BLOCK_SIZE) -> AsyncStreamIterator:
        """
        Read/iterate stream by block.

        :rtype: :py:class:`aioftps.AsyncStreamIterator`

        ::

            >>> async for block in stream.iter_by_block(block_size):
            ...     ...
        """
        return AsyncStreamIterator(lambda: self.read(count))
