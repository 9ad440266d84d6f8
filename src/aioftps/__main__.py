"""Simple aioftps-based client: list, download or upload one file"""
import argparse
import asyncio
import contextlib
import logging
import ssl
from typing import Union

import aioftps

parser = argparse.ArgumentParser(
    prog="aioftps",
    usage="%(prog)s [options] host {ls,get,put} ...",
    description="Simple aioftps-based client: list, download or upload one file.",
)
parser.add_argument("host", help="server host")
parser.add_argument("--port", type=int, default=aioftps.DEFAULT_PORT,
                    help="server port [default: %(default)s]")
parser.add_argument("--user", metavar="LOGIN", dest="login",
                    default=aioftps.DEFAULT_USER,
                    help="user name to login [default: %(default)s]")
parser.add_argument("--pass", metavar="PASSWORD", dest="password",
                    default=aioftps.DEFAULT_PASSWORD,
                    help="password to login")
parser.add_argument("--cafile", default=None,
                    help="verify server certificate with this CA bundle "
                         "(by default any certificate is accepted)")
parser.add_argument("--timeout", type=float, default=None,
                    help="socket timeout in seconds [default: no timeout]")
parser.add_argument("-d", metavar="DIRECTORY", dest="directory", default=None,
                    help="change to this remote directory first")
verbosity = parser.add_mutually_exclusive_group()
verbosity.add_argument("-q", "--quiet", action="store_true",
                       help="set logging level to 'ERROR' instead of 'INFO'")
verbosity.add_argument("-v", "--verbose", action="store_true",
                       help="set logging level to 'DEBUG' instead of 'INFO'")
commands = parser.add_subparsers(dest="command", required=True)
commands.add_parser("ls", help="list remote directory")
get = commands.add_parser("get", help="download file")
get.add_argument("source", help="remote file")
get.add_argument("destination", help="local file")
put = commands.add_parser("put", help="upload file")
put.add_argument("source", help="local file")
put.add_argument("destination", help="remote file")

logger = logging.getLogger("aioftps")


async def run(args: argparse.Namespace) -> None:
    sslcontext: Union[ssl.SSLContext, None] = None
    if args.cafile:
        sslcontext = ssl.create_default_context(cafile=args.cafile)
    async with aioftps.Client.context(
        args.host,
        args.port,
        args.login,
        args.password,
        socket_timeout=args.timeout,
        connection_timeout=args.timeout,
        sslcontext=sslcontext,
    ) as client:
        if args.directory:
            await client.change_directory(args.directory)
        if args.command == "ls":
            for entry in await client.list():
                print(entry.format())
        elif args.command == "get":
            await client.download(args.source, args.destination)
            logger.info("%s downloaded to %s", args.source, args.destination)
        elif args.command == "put":
            await client.upload(args.source, args.destination)
            logger.info("%s uploaded to %s", args.source, args.destination)


def main(argv: Union[list[str], None] = None) -> None:
    args = parser.parse_args(argv)
    if args.quiet:
        level = logging.ERROR
    elif args.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(message)s",
        datefmt="[%H:%M:%S]:",
    )
    logger.info("aioftps v%s", aioftps.__version__)
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run(args))


if __name__ == "__main__":
    main()
