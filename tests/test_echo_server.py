import asyncio
import json
import threading

import pytest
import websockets

from shellyhub.appliance import ApplianceDummy, Thermo1
from shellyhub.client_map import ClientMap
from shellyhub.echo_server import DEFAULT_PORT, EchoServer, parse_args


class FakeSocket:
    def __init__(self, name="peer"):
        self.remote_address = (name, 4242)
        self.sent = []

    async def send(self, message):
        self.sent.append(message)


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_new_connection_registers_and_sends_initial_packet():
    server = EchoServer(0, False, ClientMap())
    socket = FakeSocket()
    client = server.on_new_connection(socket)
    await settle()
    assert len(server.client_map) == 1
    assert server.client_map.by_socket(socket) is client
    assert socket.sent == [Thermo1.initial_packet()]


@pytest.mark.asyncio
async def test_text_message_is_relayed_to_all_clients():
    server = EchoServer(0, False, ClientMap())
    first, second = FakeSocket("a"), FakeSocket("b")
    client = server.on_new_connection(first)
    server.on_new_connection(second)
    await settle()
    server.process_text_message(first, "hello")
    await settle()
    assert first.sent[-1] == "hello"
    assert second.sent[-1] == "hello"
    assert client.msg_rec == 1


@pytest.mark.asyncio
async def test_identifying_packet_turns_client_into_thermostat():
    server = EchoServer(0, False, ClientMap())
    socket = FakeSocket()
    client = server.on_new_connection(socket)
    assert isinstance(client.appliance, ApplianceDummy)
    packet = json.dumps({"id": 1, "result": {"model": "S3XT-0S", "mac": "AABBCCDDEEFF"}})
    server.process_text_message(socket, packet)
    await settle()
    assert isinstance(client.appliance, Thermo1)
    assert server.client_map.by_mac("AABBCCDDEEFF") is client


@pytest.mark.asyncio
async def test_message_from_unknown_socket_is_still_relayed():
    server = EchoServer(0, False, ClientMap())
    known = FakeSocket()
    client = server.on_new_connection(known)
    server.process_text_message(FakeSocket("stranger"), "ping")
    await settle()
    assert known.sent[-1] == "ping"
    assert client.msg_rec == 0


@pytest.mark.asyncio
async def test_binary_message_goes_back_to_sender_only():
    server = EchoServer(0, False, ClientMap())
    sender, other = FakeSocket("a"), FakeSocket("b")
    server.on_new_connection(sender)
    server.on_new_connection(other)
    await settle()
    server.process_binary_message(sender, b"\x01\x02")
    await settle()
    assert sender.sent[-1] == b"\x01\x02"
    assert b"\x01\x02" not in other.sent


@pytest.mark.asyncio
async def test_disconnect_keeps_client_record():
    server = EchoServer(0, False, ClientMap())
    socket = FakeSocket()
    client = server.on_new_connection(socket)
    server.socket_disconnected(socket)
    assert client in server.client_map


@pytest.mark.asyncio
async def test_send_message_targets_client_socket():
    server = EchoServer(0, False, ClientMap())
    socket = FakeSocket()
    client = server.on_new_connection(socket)
    server.send_message("direct", client)
    await settle()
    assert socket.sent[-1] == "direct"


@pytest.mark.asyncio
async def test_send_message_from_other_thread():
    server = EchoServer(0, False, ClientMap())
    socket = FakeSocket()
    client = server.on_new_connection(socket)
    thread = threading.Thread(target=server.send_message, args=("from thread", client))
    thread.start()
    thread.join()
    for _ in range(50):
        if "from thread" in socket.sent:
            break
        await asyncio.sleep(0.01)
    assert "from thread" in socket.sent


@pytest.mark.asyncio
async def test_debug_output_reports_message(capsys):
    server = EchoServer(0, True, ClientMap())
    socket = FakeSocket()
    server.on_new_connection(socket)
    server.process_text_message(socket, "payload")
    await settle()
    out = capsys.readouterr().out
    assert "Message nr 1" in out
    assert "payload" in out


def test_send_without_loop_raises():
    server = EchoServer(0, False, ClientMap())
    with pytest.raises(RuntimeError):
        server.process_binary_message(FakeSocket(), b"x")


@pytest.mark.asyncio
async def test_close_clears_clients():
    server = EchoServer(0, False, ClientMap())
    server.on_new_connection(FakeSocket())
    server.close()
    assert len(server.client_map) == 0


def test_parse_args_defaults():
    args = parse_args([])
    assert args.debug is False
    assert args.port == DEFAULT_PORT == 1234


def test_parse_args_options():
    args = parse_args(["-d", "-p", "8080"])
    assert args.debug is True
    assert args.port == 8080
    assert parse_args(["--port", "9000"]).port == 9000


@pytest.mark.parametrize("value", ["abc", "70000", "-1"])
def test_parse_args_bad_port_is_zero(value):
    assert parse_args(["--port", value]).port == 0


@pytest.mark.asyncio
async def test_serve_end_to_end():
    server = EchoServer(0, False, ClientMap())
    task = asyncio.create_task(server.serve())
    for _ in range(200):
        if server.port:
            break
        await asyncio.sleep(0.01)
    assert server.port > 0

    async with websockets.connect(f"ws://127.0.0.1:{server.port}") as ws:
        first = await asyncio.wait_for(ws.recv(), 5)
        assert first == Thermo1.initial_packet()
        await ws.send("hello")
        echoed = await asyncio.wait_for(ws.recv(), 5)
        assert echoed == "hello"
        await ws.send(b"\x00\xff")
        assert await asyncio.wait_for(ws.recv(), 5) == b"\x00\xff"
        assert len(server.client_map) == 1

    server.close()
    await asyncio.wait_for(task, 5)
    assert task.done()
    assert len(server.client_map) == 0