# shellyhub

A small WebSocket server for Shelly devices that connect outward to a central
endpoint. Every device that connects is registered as a client, asked to
describe itself, identified by model and MAC address, and then polled on a
fixed schedule.

## What it does

- Accepts WebSocket connections on all interfaces at the chosen port.
- On every new connection, prints the peer and the client count, and sends a
  `Shelly.GetDeviceInfo` request so the device reports its model and MAC
  address.
- When a reply reports the thermostat model `S3XT-0S`, the client's handler is
  switched from `ApplianceDummy` to `Thermo1` and the MAC address from
  `/result/mac` is recorded.
- Every text message received is relayed to all connected clients, the sender
  included. Binary messages are sent back to their sender only.
- A background thread checks every 5 seconds for clients that are due, polls
  them and schedules their next poll 10 seconds later. A `Thermo1` client is
  asked for humidity, current temperature and target temperature (three
  `Number.GetStatus` requests with ids 200, 201 and 202); a client not yet
  identified is sent the text `dummy poll`.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Running the server

```
shellyhub --port 1234 --debug
```

Options:

- `-p`, `--port` — port to listen on (default `1234`). A value that is not a
  number from 0 to 65535 is taken as 0, which lets the system pick a free port.
- `-d`, `--debug` — print every received text message with its client details
  and log debug messages.

Point a device's outbound WebSocket setting at `ws://<host>:<port>/`.
Stop the server with Ctrl+C.

## Using it as a library

- `shellyhub.client_map.ClientMap` holds clients indexed uniquely by socket and
  by MAC address, and ordered by next update time. `add`, `remove`, `clear`,
  `by_socket`, `by_mac`, `due(now)` and `modify(client, change)` are provided,
  along with `len()`, iteration and `in`. Indexed attributes must be changed
  through `modify`.
- `shellyhub.appliance` holds the `Client` record, the abstract `Appliance`
  and the handlers `ApplianceDummy` and `Thermo1`, plus `parse_json`,
  `json_pointer` (RFC 6901 lookup returning `None` where nothing is found) and
  `load_all(connection)`, which reads `public.devices` through a DB-API
  connection you supply and builds a `Thermo1` for each matching row.
- `shellyhub.poll_cycle.poll_once(client_map, now)` polls every client due at
  `now` and returns those polled; `poll_cycle(client_map, stop_event,
  interval, clock)` repeats it until the event is set.
- `shellyhub.echo_server.EchoServer` ties these together behind a WebSocket
  listener: `await server.serve()` runs it and `server.close()` stops it and
  clears the client map. `parse_args` and `main` implement the command.
- `shellyhub.config.Config` and `shellyhub.config.PGDBConf` describe database
  settings; the PostgreSQL port defaults to 5432.

## What it does not do

- It reads no configuration file; `Config` only holds settings in memory.
- The server opens no database connection and never calls `load_all`.
- Clients are not removed when their socket disconnects; they stay in the
  client map until the server is closed.
- `Thermo1` does not interpret the readings it polls for; a reply is only
  checked for being valid JSON.