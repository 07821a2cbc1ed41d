"""WebSocket server that devices connect to, and the command that starts it."""

from __future__ import annotations

import argparse
import asyncio
import logging
import threading
from typing import Any, Coroutine

import websockets
from websockets.exceptions import ConnectionClosed

from shellyhub.appliance import Client
from shellyhub.client_map import ClientMap
from shellyhub.config import Config
from shellyhub.poll_cycle import poll_cycle

logger = logging.getLogger(__name__)

DEFAULT_PORT = 1234
DESCRIPTION = "QtWebSockets example: echoserver"


class EchoServer:
    """Accepts device connections, tracks them as clients and echoes traffic."""

    def __init__(
        self,
        port: int = DEFAULT_PORT,
        debug: bool = False,
        client_map: ClientMap | None = None,
    ) -> None:
        self.port = port
        self.debug = debug
        self.client_map = client_map if client_map is not None else ClientMap()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closed: asyncio.Event | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    def _dispatch(self, coro: Coroutine[Any, Any, Any]) -> None:
        """Run a send coroutine on the server loop, from whichever thread."""
        try:
            running: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if self._loop is None:
            self._loop = running
        if self._loop is None:
            coro.close()
            raise RuntimeError("no event loop to send on")
        if running is self._loop:
            task = self._loop.create_task(coro)
            self._tasks.add(task)
            task.add_done_callback(self._send_done)
        else:
            asyncio.run_coroutine_threadsafe(coro, self._loop)

    def _send_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("send failed: %s", task.exception())

    def on_new_connection(self, socket: Any) -> Client:
        """Register a freshly connected socket and ask the device who it is."""
        peer = getattr(socket, "remote_address", None)
        print(f"New connection: {peer} ({id(socket):#x})")
        client = Client(socket, self.client_map, self.send_message)
        self.client_map.add(client)
        print(f"Clients: {len(self.client_map)}")
        client.send_initial_packet()
        return client

    def process_text_message(self, socket: Any, message: str) -> None:
        """Let the sender's appliance decode a message, then relay it to every client."""
        client = self.client_map.by_socket(socket)
        if client is not None:
            client.msg_rec += 1
            if self.debug:
                peer = getattr(socket, "remote_address", None)
                print(
                    f"Message nr {client.msg_rec} received from client {peer} "
                    f"({id(socket):#x}) (mac: {client.mac}):\n{message}"
                )
            client.appliance.decode_packet(message)

        for other in self.client_map:
            self._dispatch(other.socket.send(message))

    def process_binary_message(self, socket: Any, message: bytes) -> None:
        """Send a binary message straight back to its sender."""
        if self.debug:
            logger.debug("Binary Message received: %r", message)
        if socket is not None:
            self._dispatch(socket.send(message))

    def socket_disconnected(self, socket: Any) -> None:
        """Note a disconnect; the client record is kept."""
        if self.debug:
            logger.debug("socketDisconnected: %r", socket)

    def send_message(self, message: str, client: Client) -> None:
        """Send a text message to one client's socket."""
        self._dispatch(client.socket.send(message))

    async def _handle(self, websocket: Any) -> None:
        self.on_new_connection(websocket)
        try:
            async for message in websocket:
                if isinstance(message, str):
                    self.process_text_message(websocket, message)
                else:
                    self.process_binary_message(websocket, message)
        except ConnectionClosed:
            pass
        finally:
            self.socket_disconnected(websocket)

    async def serve(self) -> None:
        """Listen on all interfaces until ``close`` is called."""
        self._loop = asyncio.get_running_loop()
        self._closed = asyncio.Event()
        async with websockets.serve(self._handle, None, self.port) as server:
            sockets = list(server.sockets or ())
            if sockets:
                self.port = sockets[0].getsockname()[1]
            if self.debug:
                logger.debug("Echoserver listening on port %s", self.port)
            await self._closed.wait()
        self.client_map.clear()

    def close(self) -> None:
        """Stop serving and forget every client."""
        if self._loop is not None and self._closed is not None:
            self._loop.call_soon_threadsafe(self._closed.set)
        self.client_map.clear()


def _ushort(text: str) -> int:
    """Read a port number; anything that is not a 16-bit unsigned value gives 0."""
    try:
        value = int(text.strip(), 10)
    except ValueError:
        return 0
    return value if 0 <= value <= 0xFFFF else 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=DESCRIPTION)
    parser.add_argument(
        "-d", "--debug", action="store_true", help="Debug output [default: off]."
    )
    parser.add_argument(
        "-p",
        "--port",
        type=_ushort,
        default=DEFAULT_PORT,
        metavar="port",
        help=f"Port for echoserver [default: {DEFAULT_PORT}].",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO)
    Config()
    logger.debug("start")

    client_map = ClientMap()
    server = EchoServer(args.port, args.debug, client_map)
    stop = threading.Event()
    poller = threading.Thread(target=poll_cycle, args=(client_map, stop), daemon=True)
    poller.start()
    try:
        asyncio.run(server.serve())
    except KeyboardInterrupt:
        pass
    finally:
        stop.set()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())