import pathlib
from datetime import datetime

import pytest

import aioftps

LISTING = (
    "type=file;size=1024;modify=20230115120000; report.txt",
    "type=dir;modify=20221231235959;perm=el; archive",
)


@pytest.mark.asyncio
async def test_change_directory(pair_factory, Server):
    server = Server(directories=("/", "/bar"))
    async with pair_factory(server) as pair:
        await pair.client.change_directory("/bar")
        assert pair.server.cwd == "/bar"
        await pair.client.change_directory(pathlib.PurePosixPath("/"))
        assert pair.server.cwd == "/"


@pytest.mark.asyncio
async def test_change_directory_not_exist(pair_factory,
                                          expect_codes_in_exception):
    async with pair_factory() as pair:
        with expect_codes_in_exception(550, aioftps.InvalidPath):
            await pair.client.change_directory("bar")
        assert pair.client.state is aioftps.SessionState.ready
        assert pair.server.cwd == "/"


@pytest.mark.asyncio
async def test_change_directory_not_encodable(pair_factory, Server):
    server = Server(directories=("/", "/d?r"))
    async with pair_factory(server) as pair:
        await pair.client.change_directory("/d\u00efr")
        assert pair.server.commands[-1] == "CWD /d?r"
        assert pair.server.cwd == "/d?r"


@pytest.mark.asyncio
async def test_connect_root_not_available(pair_factory, Server,
                                          expect_codes_in_exception):
    server = Server(directories=())
    async with pair_factory(server, connected=False) as pair:
        with expect_codes_in_exception(550, aioftps.InvalidPath):
            await pair.client.connect(server.host, server.port, "foo", "bar")
        assert pair.client.state is aioftps.SessionState.disconnected


@pytest.mark.asyncio
async def test_list(pair_factory, Server):
    server = Server(listing=LISTING)
    async with pair_factory(server) as pair:
        report, archive = await pair.client.list()
        assert pair.server.commands[-2:] == ["PASV", "MLSD"]
        # transfer reply is already taken, next reply belongs to next command
        assert await pair.client.command("NOOP") == (502, " not implemented")

    assert report.type is aioftps.EntryType.file
    assert report.name == "report.txt"
    assert report.size == 1024
    assert report.modified == datetime(2023, 1, 15, 12, 0, 0)
    assert archive.type is aioftps.EntryType.directory
    assert archive.name == "archive"
    assert archive.size == 0
    assert archive.facts["perm"] == "el"


@pytest.mark.asyncio
async def test_list_empty(pair_factory):
    async with pair_factory() as pair:
        assert await pair.client.list() == []


@pytest.mark.asyncio
async def test_list_twice(pair_factory, Server):
    server = Server(listing=LISTING)
    async with pair_factory(server) as pair:
        first = await pair.client.list()
        second = await pair.client.list()
        assert first == second
        assert pair.server.commands.count("MLSD") == 2


@pytest.mark.asyncio
async def test_list_malformed_line(pair_factory, Server):
    server = Server(listing=LISTING + ("type=file;size=1; no-modify",))
    async with pair_factory(server) as pair:
        with pytest.raises(aioftps.MalformedListing):
            await pair.client.list()
        assert await pair.client.command("NOOP") == (502, " not implemented")


@pytest.mark.asyncio
async def test_list_bad_transfer_reply(pair_factory, Server,
                                       expect_codes_in_exception):

    async def mlsd(server, writer, rest):
        await server.write_line(writer, "150 listing follows")
        reader, data_writer = await server.data_connection
        data_writer.close()
        await data_writer.wait_closed()
        await server.write_line(writer, "451 local error")
        return True

    server = Server({"MLSD": mlsd})
    async with pair_factory(server) as pair:
        with expect_codes_in_exception(451, aioftps.UnexpectedReply):
            await pair.client.list()


@pytest.mark.asyncio
async def test_list_data_stream(pair_factory, Server):
    server = Server(listing=LISTING)
    async with pair_factory(server) as pair:
        async with pair.client.get_stream("MLSD") as stream:
            data = b""
            async for block in stream.iter_by_block():
                data += block
        assert data.decode().splitlines() == list(LISTING)
