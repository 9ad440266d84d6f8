import abc
import asyncio
import functools
import io
import sys
from collections.abc import AsyncIterable, Awaitable, Callable
from concurrent.futures import Executor
from pathlib import Path, PurePath, PurePosixPath
from typing import IO, Any, Generic, Literal, TypeVar, Union

from .common import DEFAULT_BLOCK_SIZE, AsyncStreamIterator, with_timeout
from .errors import PathIOError

if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self


__all__ = (
    "AbstractPathIO",
    "PathIO",
    "AsyncPathIO",
    "MemoryPathIO",
)

# "rb" is the upload source, "wb" the download sink
OpenMode = Literal["rb", "wb"]

FileMethod = Callable[..., Awaitable[Any]]


class LocalFile:
    """
    Opened local file, bound to the path io which opened it. Use it as
    async context manager, the file is closed on exit.

    ::

        >>> async with path_io.open(path) as file_in:
        ...     async for block in file_in.iter_by_block(size):
        ...         # do
    """

    def __init__(self, path_io: "AbstractPathIO[Any]", path: PurePath, mode: OpenMode) -> None:
        self.path_io = path_io
        self.path = path
        self.mode = mode
        self.file: Union[IO[bytes], None] = None

    async def __aenter__(self) -> Self:
        self.file = await self.path_io._open(self.path, self.mode)
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self.file is not None:
            await self.path_io.close(self.file)
            self.file = None

    async def read(self, count: int = -1) -> bytes:
        return await self.path_io.read(self.file, count)

    async def write(self, data: bytes) -> int:
        return await self.path_io.write(self.file, data)

    def iter_by_block(self, count: int = DEFAULT_BLOCK_SIZE) -> AsyncIterable[bytes]:
        return AsyncStreamIterator(lambda: self.read(count))


def universal_exception(coro: FileMethod) -> FileMethod:
    """
    Decorator. Reraising any exception (except `CancelledError` and
    `NotImplementedError`) as :py:class:`aioftps.PathIOError` with the
    caught `sys.exc_info()` in `reason`.
    """

    @functools.wraps(coro)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await coro(*args, **kwargs)
        except (asyncio.CancelledError, NotImplementedError):
            raise
        except Exception as exc:
            raise PathIOError(reason=sys.exc_info()) from exc

    return wrapper


def defend_file_methods(coro: FileMethod) -> FileMethod:
    """
    Decorator. File methods take raw file objects, not
    :py:class:`aioftps.pathio.LocalFile`.
    """

    @functools.wraps(coro)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        if isinstance(args[1], LocalFile):
            raise ValueError("path io file methods take raw file objects, not LocalFile")
        return await coro(*args, **kwargs)

    return wrapper


PathType = TypeVar("PathType", bound=PurePath)


class AbstractPathIO(Generic[PathType], abc.ABC):
    """
    Local file operations used by transfers. Every method reraises its
    failures as :py:class:`aioftps.PathIOError`.

    :param timeout: timeout used by `with_timeout` decorator
    :type timeout: :py:class:`float`, :py:class:`int` or `None`
    """

    def __init__(self, timeout: Union[float, int, None] = None) -> None:
        self.timeout = timeout

    @abc.abstractmethod
    async def _open(self, path: PathType, mode: OpenMode) -> IO[bytes]:
        """
        :py:func:`asyncio.coroutine`

        Open file. "rb" opens existing file for reading, "wb" creates the
        file or truncates existing one.
        """

    def open(self, path: PathType, mode: OpenMode = "rb") -> LocalFile:
        """
        :param path: local path
        :type path: :py:class:`pathlib.PurePath`

        :param mode: "rb" or "wb"
        :type mode: :py:class:`str`

        :rtype: :py:class:`aioftps.pathio.LocalFile`
        """
        return LocalFile(self, path, mode)

    @abc.abstractmethod
    async def read(self, file: IO[bytes], count: int = -1) -> bytes:
        """
        :py:func:`asyncio.coroutine`

        Read up to `count` bytes, empty bytes at end of file.
        """

    @abc.abstractmethod
    async def write(self, file: IO[bytes], data: bytes) -> int:
        """
        :py:func:`asyncio.coroutine`
        """

    @abc.abstractmethod
    async def close(self, file: IO[bytes]) -> None:
        """
        :py:func:`asyncio.coroutine`
        """


class PathIO(AbstractPathIO[Path]):
    """
    Blocking path io. Directly based on :py:class:`pathlib.Path` methods.
    """

    @universal_exception
    async def _open(self, path: Path, mode: OpenMode = "rb") -> IO[bytes]:
        return Path(path).open(mode=mode)

    @universal_exception
    @defend_file_methods
    async def read(self, file: IO[bytes], count: int = -1) -> bytes:
        return file.read(count)

    @universal_exception
    @defend_file_methods
    async def write(self, file: IO[bytes], data: bytes) -> int:
        return file.write(data)

    @universal_exception
    @defend_file_methods
    async def close(self, file: IO[bytes]) -> None:
        file.close()


def _in_executor(f: Callable[..., Any]) -> Callable[..., Awaitable[Any]]:
    @functools.wraps(f)
    async def wrapper(self: "AsyncPathIO", *args: Any) -> Any:
        return await asyncio.get_running_loop().run_in_executor(
            self.executor,
            functools.partial(f, self, *args),
        )

    return wrapper


class AsyncPathIO(AbstractPathIO[Path]):
    """
    Non-blocking path io. Blocking :py:class:`pathlib.Path` calls are run
    with :py:meth:`asyncio.loop.run_in_executor`.

    :param executor: executor for running blocking tasks, default one if
        omitted
    :type executor: :py:class:`concurrent.futures.Executor`
    """

    def __init__(
        self,
        timeout: Union[float, int, None] = None,
        executor: Union[Executor, None] = None,
    ) -> None:
        super().__init__(timeout)
        self.executor = executor

    @universal_exception
    @with_timeout
    @_in_executor
    def _open(self, path: Path, mode: OpenMode = "rb") -> IO[bytes]:
        return Path(path).open(mode=mode)

    @universal_exception
    @defend_file_methods
    @with_timeout
    @_in_executor
    def read(self, file: IO[bytes], count: int = -1) -> bytes:
        return file.read(count)

    @universal_exception
    @defend_file_methods
    @with_timeout
    @_in_executor
    def write(self, file: IO[bytes], data: bytes) -> int:
        return file.write(data)

    @universal_exception
    @defend_file_methods
    @with_timeout
    @_in_executor
    def close(self, file: IO[bytes]) -> None:
        file.close()


class MemoryPathIO(AbstractPathIO[PurePosixPath]):
    """
    In-memory path io: flat mapping of absolute paths to file contents plus
    a set of existing directories. Handy for tests.

    :param cwd: base for relative paths
    :type cwd: :py:class:`str` or :py:class:`pathlib.PurePosixPath`

    :param directories: directories besides "/"
    :type directories: iterable of :py:class:`str`
    """

    def __init__(
        self,
        timeout: Union[float, int, None] = None,
        cwd: Union[str, PurePosixPath] = "/",
        directories: tuple[str, ...] = (),
    ) -> None:
        super().__init__(timeout=timeout)
        self.cwd = PurePosixPath(cwd)
        self.directories = {PurePosixPath("/")}
        self.directories.update(self._absolute(d) for d in directories)
        self.files: dict[PurePosixPath, io.BytesIO] = {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(directories={sorted(self.directories)!r}, files={sorted(self.files)!r})"

    def _absolute(self, path: Union[str, PurePath]) -> PurePosixPath:
        return self.cwd / PurePosixPath(path)

    @universal_exception
    async def _open(self, path: PurePosixPath, mode: OpenMode = "rb") -> IO[bytes]:
        path = self._absolute(path)
        if mode not in ("rb", "wb"):
            raise ValueError(f"invalid mode: {mode}")
        if path in self.directories:
            raise IsADirectoryError(str(path))
        if mode == "rb":
            if path not in self.files:
                raise FileNotFoundError(str(path))
            file = self.files[path]
            file.seek(0)
        elif mode == "wb":
            if path.parent not in self.directories:
                raise FileNotFoundError(str(path.parent))
            file = self.files[path] = io.BytesIO()
        return file

    @universal_exception
    @defend_file_methods
    async def read(self, file: IO[bytes], count: int = -1) -> bytes:
        return file.read(count)

    @universal_exception
    @defend_file_methods
    async def write(self, file: IO[bytes], data: bytes) -> int:
        return file.write(data)

    @universal_exception
    @defend_file_methods
    async def close(self, file: IO[bytes]) -> None:
        # content stays readable for the next open
        pass
