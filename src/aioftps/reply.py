import asyncio
import collections
import logging
import re
from typing import NamedTuple, Protocol

from . import errors
from .common import REPLY_CHUNK_SIZE

__all__ = (
    "Reply",
    "ReplyReader",
)
logger = logging.getLogger(__name__)

# Some servers interleave these control characters with reply lines.
# U+FFFD stands in for any byte the decoder could not map.
REPLY_SEPARATORS = re.compile("[\r\n\x17\x03\x01\x00?\ufffd]")


class ReadableStream(Protocol):
    async def read(self, count: int = -1) -> bytes: ...


class Reply(NamedTuple):
    """
    Single line of server response.

    :param code: leading decimal digits of the line (`0` if there are none)
    :type code: :py:class:`int`

    :param message: rest of the line starting from the first non-digit
        character, empty if the line holds only digits
    :type message: :py:class:`str`
    """

    code: int
    message: str = ""

    @classmethod
    def parse(cls, line: str) -> "Reply":
        """
        Parse one reply line.

        ::

            >>> Reply.parse("220 Welcome")
            Reply(code=220, message=' Welcome')
            >>> Reply.parse("226")
            Reply(code=226, message='')
        """
        code = 0
        for i, ch in enumerate(line):
            if "0" <= ch <= "9":
                code = code * 10 + ord(ch) - ord("0")
                continue
            return cls(code, line[i:])
        return cls(code)

    def __str__(self) -> str:
        return f"{self.code}{self.message}"


class ReplyReader:
    """
    Turns control connection bytes into :py:class:`aioftps.Reply` records.

    Bytes are pulled in «read passes». A pass reads chunks until the
    collected text holds a line terminator or the stream ends, so one pass
    can produce several records. Text after the last terminator of a pass
    is dropped, nothing is carried over to the next pass. Multi-line
    (`"250-"`) replies are not joined, every line is a record on its own.

    :param stream: source of bytes, anything with coroutine `read(count)`
    :type stream: :py:class:`aioftps.StreamIO`

    :param encoding: encoding of the control connection
    :type encoding: :py:class:`str`

    :param chunk_size: size of one read request
    :type chunk_size: :py:class:`int`
    """

    def __init__(
        self,
        stream: ReadableStream,
        *,
        encoding: str = "ascii",
        chunk_size: int = REPLY_CHUNK_SIZE,
    ) -> None:
        self.stream = stream
        self.encoding = encoding
        self.chunk_size = chunk_size
        self._queue: collections.deque[Reply] = collections.deque()

    @property
    def pending(self) -> int:
        """
        Count of already parsed records. Never reads.
        """
        return len(self._queue)

    async def _read_pass(self) -> None:
        text = ""
        while True:
            try:
                data = await self.stream.read(self.chunk_size)
            except (OSError, asyncio.TimeoutError) as exc:
                logger.debug("read pass interrupted: %r", exc)
                break
            if not data:
                break
            text += data.decode(encoding=self.encoding, errors="replace")
            if "\n" in text:
                text, _, rest = text.rpartition("\n")
                if rest:
                    logger.debug("dropping partial line %r", rest)
                break
        for line in REPLY_SEPARATORS.split(text):
            if line:
                logger.debug(line)
                self._queue.append(Reply.parse(line))

    async def has_pending(self) -> bool:
        """
        :py:func:`asyncio.coroutine`

        Check for available records. Performs a read pass if there are no
        parsed records yet, so it may block.

        :rtype: :py:class:`bool`
        """
        if not self._queue:
            await self._read_pass()
        return bool(self._queue)

    async def next_reply(self) -> Reply:
        """
        :py:func:`asyncio.coroutine`

        Oldest record, performing a read pass if there is none.

        :rtype: :py:class:`aioftps.Reply`

        :raises aioftps.ConnectionClosed: if the read pass gave nothing
        """
        if not await self.has_pending():
            raise errors.ConnectionClosed("no reply from server")
        return self._queue.popleft()
