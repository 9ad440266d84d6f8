import asyncio
import contextlib
import ssl
import tempfile
from pathlib import Path

import pytest
import trustme
from async_timeout import timeout

import aioftps

ca = trustme.CA()
server_cert = ca.issue_cert("127.0.0.1", "localhost")

ssl_server = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
server_cert.configure_cert(ssl_server)

ssl_client = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
ca.configure_trust(ssl_client)


def simple_response(*lines):
    async def command(server, writer, rest):
        for line in lines:
            await server.write_line(writer, line)
        return True

    return command


async def not_implemented(server, writer, rest):
    await server.write_line(writer, "502 not implemented")
    return True


async def user_(server, writer, rest):
    if server.password is None:
        await server.write_line(writer, "230 no password needed")
    else:
        await server.write_line(writer, "331 password required")
    return True


async def pass_(server, writer, rest):
    if rest == server.password:
        await server.write_line(writer, "230 logged in")
    else:
        await server.write_line(writer, "530 login incorrect")
    return True


async def cwd(server, writer, rest):
    if rest in server.directories:
        server.cwd = rest
        await server.write_line(writer, "250 directory changed")
    else:
        await server.write_line(writer, "550 no such directory")
    return True


async def pasv(server, writer, rest):
    port = await server.start_data_server()
    await server.write_line(
        writer,
        f"227 Entering Passive Mode (127,0,0,1,{port >> 8},{port & 0xFF}).",
    )
    return True


async def mlsd(server, writer, rest):
    await server.write_line(writer, "150 listing follows")
    reader, data_writer = await server.data_connection
    data_writer.write("".join(line + "\r\n" for line in server.listing).encode())
    await data_writer.drain()
    data_writer.close()
    await data_writer.wait_closed()
    await server.write_line(writer, "226 listing done")
    return True


async def stor(server, writer, rest):
    await server.write_line(writer, "150 ready to receive")
    reader, data_writer = await server.data_connection
    server.files[rest] = await reader.read()
    data_writer.close()
    await data_writer.wait_closed()
    await server.write_line(writer, "226 transfer complete")
    return True


async def retr(server, writer, rest):
    if rest not in server.files:
        await server.write_line(writer, "550 no such file")
        return True
    await server.write_line(writer, "150 sending file")
    reader, data_writer = await server.data_connection
    data_writer.write(server.files[rest])
    await data_writer.drain()
    data_writer.close()
    await data_writer.wait_closed()
    await server.write_line(writer, "226 transfer complete")
    return True


async def quit_(server, writer, rest):
    await server.write_line(writer, "221 bye")
    return False


class ScriptedServer:
    """
    Implicit TLS server, which answers commands with `handlers`.
    Handler takes (server, writer, argument) and returns `False` to close
    the control connection.
    """

    def __init__(self, handlers=None, *, greeting=("220 welcome",),
                 password="bar", files=None, listing=(),
                 directories=("/",), greeting_pause=None):
        self.handlers = {
            "USER": user_,
            "PASS": pass_,
            "CWD": cwd,
            "PASV": pasv,
            "MLSD": mlsd,
            "STOR": stor,
            "RETR": retr,
            "QUIT": quit_,
        }
        self.handlers.update(handlers or {})
        self.greeting = greeting
        self.greeting_pause = greeting_pause
        self.password = password
        self.files = dict(files or {})
        self.listing = list(listing)
        self.directories = set(directories)
        self.cwd = None
        self.commands = []
        self.writers = []
        self.data_servers = []
        self.data_connection = None

    async def write_line(self, writer, line):
        writer.write((line + "\r\n").encode())
        await writer.drain()

    async def start_data_server(self):
        self.data_connection = asyncio.get_running_loop().create_future()

        async def handler(reader, writer):
            self.writers.append(writer)
            if self.data_connection.done():
                writer.close()
            else:
                self.data_connection.set_result((reader, writer))

        data_server = await asyncio.start_server(handler, "127.0.0.1", 0)
        self.data_servers.append(data_server)
        return data_server.sockets[0].getsockname()[1]

    async def dispatcher(self, reader, writer):
        self.writers.append(writer)
        with contextlib.suppress(ConnectionError, ssl.SSLError):
            if self.greeting_pause is None:
                # whole greeting goes in one write
                writer.write("".join(line + "\r\n" for line in self.greeting).encode())
                await writer.drain()
            else:
                for line in self.greeting:
                    await self.write_line(writer, line)
                    await asyncio.sleep(self.greeting_pause)
            while True:
                line = await reader.readline()
                if not line:
                    break
                command = line.decode().rstrip("\r\n")
                self.commands.append(command)
                verb, _, rest = command.partition(" ")
                handler = self.handlers.get(verb.upper(), not_implemented)
                if not await handler(self, writer, rest):
                    break
            writer.close()

    async def __aenter__(self):
        self.server = await asyncio.start_server(
            self.dispatcher,
            "127.0.0.1",
            0,
            ssl=ssl_server,
        )
        self.host, self.port = self.server.sockets[0].getsockname()[:2]
        return self

    async def __aexit__(self, *exc_info):
        for writer in self.writers:
            writer.close()
        for server in [self.server] + self.data_servers:
            server.close()
            await server.wait_closed()


@pytest.fixture
def client_ssl_context():
    return ssl_client


@pytest.fixture
def server_certificate():
    pem = server_cert.cert_chain_pems[0].bytes().decode()
    return ssl.PEM_cert_to_DER_cert(pem)


@pytest.fixture
def Server():
    return ScriptedServer


@pytest.fixture
def pair_factory():

    class Factory:

        def __init__(self, server=None, *, connected=True, do_quit=True,
                     user="foo", password="bar", **client_kwargs):
            if server is None:
                server = ScriptedServer()
            self.server = server
            self.client = aioftps.Client(**client_kwargs)
            self.connected = connected
            self.do_quit = do_quit
            self.user = user
            self.password = password
            self.timeout = timeout(5)

        async def __aenter__(self):
            await self.timeout.__aenter__()
            await self.server.__aenter__()
            if self.connected:
                await self.client.connect(
                    self.server.host,
                    self.server.port,
                    self.user,
                    self.password,
                )
            return self

        async def __aexit__(self, *exc_info):
            if self.connected and self.do_quit:
                await self.client.quit()
            self.client.close()
            await self.server.__aexit__(*exc_info)
            await self.timeout.__aexit__(*exc_info)

    return Factory


@pytest.fixture
def expect_codes_in_exception():
    @contextlib.contextmanager
    def context(code, exception=aioftps.StatusCodeError):
        try:
            yield
        except exception as e:
            assert e.received_code == code
        else:
            raise RuntimeError("There was no exception")
    return context


@pytest.fixture(params=[aioftps.MemoryPathIO, aioftps.PathIO,
                        aioftps.AsyncPathIO])
def path_io(request):
    return request.param()


@pytest.fixture
def temp_dir(path_io):
    if isinstance(path_io, aioftps.MemoryPathIO):
        yield Path("/")
    else:
        with tempfile.TemporaryDirectory() as name:
            yield Path(name)
