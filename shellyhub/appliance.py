"""Appliance types, their wire packets and the connected client record."""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from contextlib import closing
from typing import TYPE_CHECKING, Any, Callable, Mapping

if TYPE_CHECKING:
    from shellyhub.client_map import ClientMap

logger = logging.getLogger(__name__)

DEVICES_QUERY = "SELECT * FROM public.devices"
THERMO1_MODEL = "S3XT-0S"

_THERMO1_INITIAL_PACKET = """
{
  "method": "Shelly.GetDeviceInfo",
  "id": 1,
  "params": {}
}
"""

_THERMO1_POLL_PACKETS = (
    '{"id": 200, "method": "Number.GetStatus",   "params": { "id": 200 } }',  # humidity
    '{"id": 201, "method": "Number.GetStatus",   "params": { "id": 201 } }',  # current temperature
    '{"id": 202, "method": "Number.GetStatus",   "params": { "id": 202 } }',  # target temperature
)


def parse_json(text: str | bytes) -> Any:
    """Parse a JSON document, raising ValueError when it is malformed."""
    return json.loads(text)


def json_pointer(document: Any, pointer: str) -> Any:
    """Resolve an RFC 6901 pointer; return None where nothing is found."""
    if pointer == "":
        return document
    if not pointer.startswith("/"):
        raise ValueError(f"invalid JSON pointer: {pointer!r}")
    current = document
    for raw in pointer[1:].split("/"):
        segment = raw.replace("~1", "/").replace("~0", "~")
        if isinstance(current, dict):
            if segment not in current:
                return None
            current = current[segment]
        elif isinstance(current, list):
            if not (segment.isascii() and segment.isdigit()) or (
                len(segment) > 1 and segment[0] == "0"
            ):
                return None
            index = int(segment)
            if index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current


def load_all(connection: Any) -> list[Appliance]:
    """Load the known appliances from the device table of a DB-API connection.

    Query errors are logged and yield an empty list.
    """
    appliances: list[Appliance] = []
    try:
        with closing(connection.cursor()) as cursor:
            cursor.execute(DEVICES_QUERY)
            columns = [column[0] for column in cursor.description]
            rows = [dict(zip(columns, values)) for values in cursor.fetchall()]
        connection.commit()
    except Exception as exc:  # any driver error
        logger.error("Query error: %s", exc)
        return appliances

    for row in rows:
        if row.get("type") == "Thermostat" and row.get("model") == "changeMe":
            appliance = Thermo1()
            appliance.from_row(row)
            appliances.append(appliance)
    return appliances


class Appliance(ABC):
    """A kind of device behind a client connection."""

    def __init__(self, client: Client | None = None) -> None:
        self.db_id = 0
        self.client = client

    @abstractmethod
    def from_row(self, row: Mapping[str, Any]) -> None:
        """Fill in fields from a device table row."""

    @abstractmethod
    def decode_mac(self, json_value: Any) -> bool:
        """Pick the device MAC out of a decoded packet."""

    @abstractmethod
    def decode_packet(self, packet: str | bytes) -> bool:
        """Handle a text packet received from the device."""

    @abstractmethod
    def poll_state(self) -> None:
        """Ask the device for its current state."""


class Thermo1(Appliance):
    """Shelly wall thermostat."""

    @staticmethod
    def initial_packet() -> str:
        return _THERMO1_INITIAL_PACKET

    @staticmethod
    def identify(json_value: Any) -> bool:
        model = json_pointer(json_value, "/result/model")
        return isinstance(model, str) and model == THERMO1_MODEL

    def from_row(self, row: Mapping[str, Any]) -> None:
        self.db_id = row["id"]
        if self.client is not None:
            self.client.mac = row["mac_address"]

    def decode_mac(self, json_value: Any) -> bool:
        mac = json_pointer(json_value, "/result/mac")
        client = self.client
        if isinstance(mac, str) and client is not None:
            if client.client_map is None:
                client.mac = mac
            else:
                indexed = client.client_map.by_socket(client.socket)
                if indexed is not None:
                    client.client_map.modify(indexed, lambda c: setattr(c, "mac", mac))
        return True

    def decode_packet(self, packet: str | bytes) -> bool:
        try:
            parse_json(packet)
        except ValueError:
            return False
        return True

    def poll_state(self) -> None:
        if self.client is None:
            raise RuntimeError("appliance has no client")
        for message in _THERMO1_POLL_PACKETS:
            self.client.send_message(message)


class ApplianceDummy(Appliance):
    """Placeholder until the device on a connection has been identified."""

    def from_row(self, row: Mapping[str, Any]) -> None:
        pass

    def decode_mac(self, json_value: Any) -> bool:
        return False

    def decode_packet(self, packet: str | bytes) -> bool:
        try:
            document = parse_json(packet)
        except ValueError:
            return False
        if not Thermo1.identify(document):
            return False
        replacement = Thermo1(self.client)
        if self.client is not None:
            self.client.appliance = replacement
        replacement.decode_mac(document)
        return True

    def poll_state(self) -> None:
        if self.client is None:
            raise RuntimeError("appliance has no client")
        self.client.send_message("dummy poll")


class Client:
    """A device connection and the appliance it turned out to be."""

    def __init__(
        self,
        socket: Any,
        client_map: ClientMap | None = None,
        sender: Callable[[str, Client], None] | None = None,
    ) -> None:
        self.msg_rec = 0
        self.msg_sent = 0
        self.last_poll = 0
        self.last_update = 0
        self.next_update = 0
        self.socket = socket
        self.client_map = client_map
        self.sender = sender
        self.appliance: Appliance = ApplianceDummy(self)
        # A unique starting value, replaced once the real MAC is known.
        self.mac = str(time.time_ns() // 1_000_000)

    def send_message(self, message: str) -> None:
        if self.sender is None:
            raise RuntimeError("client has no sender")
        self.sender(message, self)

    def send_initial_packet(self) -> None:
        self.send_message(Thermo1.initial_packet())