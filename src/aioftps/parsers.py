import enum
import re
from collections.abc import Mapping
from datetime import datetime
from types import MappingProxyType
from typing import NamedTuple, Union

from . import errors
from .reply import Reply

__all__ = (
    "PassiveAddress",
    "EntryType",
    "DirectoryEntry",
    "parse_mlsd_line",
)

PASV_SEPARATORS = re.compile(r"[,()]")
MODIFY_PATTERN = re.compile(r"\d{14}", re.ASCII)
MODIFY_FORMAT = "%Y%m%d%H%M%S"


class PassiveAddress(NamedTuple):
    """
    Data connection address announced by `PASV`.
    """

    host: str
    port: int

    @classmethod
    def parse(cls, reply: Union[Reply, str]) -> "PassiveAddress":
        """
        Parsing `PASV` (`227 Entering Passive Mode (h1,h2,h3,h4,p1,p2)`)
        response. Numbers are not range checked.

        :param reply: response record or its message
        :type reply: :py:class:`aioftps.Reply` or :py:class:`str`

        :rtype: :py:class:`aioftps.PassiveAddress`

        :raises aioftps.ProtocolViolation: if there is no six numbers tuple
        """
        s = reply.message if isinstance(reply, Reply) else reply
        fields = [f.strip() for f in PASV_SEPARATORS.split(s)[1:7]]
        if len(fields) < 6:
            raise errors.ProtocolViolation(f"can't find address in {s!r}")
        try:
            nums = [int(f) for f in fields]
        except ValueError as exc:
            raise errors.ProtocolViolation(f"can't parse address in {s!r}") from exc
        host = ".".join(fields[:4])
        port = nums[4] * 256 + nums[5]
        return cls(host, port)


class EntryType(enum.Enum):
    file = "file"
    directory = "dir"
    unknown = "unknown"

    @classmethod
    def from_fact(cls, value: str) -> "EntryType":
        value = value.lower()
        if value == "file":
            return cls.file
        if value == "dir":
            return cls.directory
        return cls.unknown


class DirectoryEntry(NamedTuple):
    """
    One entry of `MLSD` listing.

    :param type: entry type
    :type type: :py:class:`aioftps.EntryType`

    :param name: entry name without surrounding whitespace
    :type name: :py:class:`str`

    :param size: size in bytes, `0` if the server did not send it
    :type size: :py:class:`int`

    :param modified: last modification time, naive
    :type modified: :py:class:`datetime.datetime`

    :param facts: all facts of the line as is, read-only
    :type facts: :py:class:`types.MappingProxyType`
    """

    type: EntryType
    name: str
    size: int
    modified: datetime
    facts: Mapping[str, str] = MappingProxyType({})

    def format(self) -> str:
        return (
            f"Name: {self.name}\n"
            f"Type: {self.type.name.capitalize()}\n"
            f"Size: {self.size}\n"
            f"Last Modification: {self.modified:%Y-%m-%d %H:%M:%S}\n"
        )


def parse_mlsd_line(line: str) -> DirectoryEntry:
    """
    Parsing MLSD line (`fact=value;fact=value; name`). The token without
    `=` is the name, `name=` fact works as well.

    :param line: listing line
    :type line: :py:class:`str`

    :rtype: :py:class:`aioftps.DirectoryEntry`

    :raises aioftps.MalformedListing: if `type` or `modify` is missing or
        broken
    """
    facts = {}
    for token in line.split(";"):
        if not token:
            continue
        key, sep, value = token.partition("=")
        if sep:
            facts[key] = value
        else:
            facts["name"] = token
    if "type" not in facts:
        raise errors.MalformedListing(f"no 'type' fact in {line!r}")
    if "modify" not in facts:
        raise errors.MalformedListing(f"no 'modify' fact in {line!r}")
    modify = facts["modify"]
    if not MODIFY_PATTERN.fullmatch(modify):
        raise errors.MalformedListing(f"bad 'modify' fact {modify!r}")
    try:
        modified = datetime.strptime(modify, MODIFY_FORMAT)
    except ValueError as exc:
        raise errors.MalformedListing(f"bad 'modify' fact {modify!r}") from exc
    size = 0
    if "size" in facts:
        raw_size = facts["size"].strip()
        if not (raw_size.isascii() and raw_size.isdigit()):
            raise errors.MalformedListing(f"bad 'size' fact {raw_size!r}")
        size = int(raw_size)
    return DirectoryEntry(
        type=EntryType.from_fact(facts["type"]),
        name=facts.get("name", "").strip(),
        size=size,
        modified=modified,
        facts=MappingProxyType(facts),
    )
