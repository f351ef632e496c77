# peerlink

peerlink finds other nodes on the local network, opens TCP links to them and
watches a shared directory for changes.

## Installation

```
pip install .
```

## Running

The node watches `./Shared`, relative to the directory it is started in. If
that directory does not exist, the command logs an error and exits with
status 1. So create it first:

```
mkdir Shared
peerlink
```

The command takes no options other than `--help`. It logs at INFO level and
runs until interrupted with Ctrl+C.

Start it on two or more machines on the same network. A running node:

- picks a random socket id below 10,000,000 at startup and logs it
  (`peerlink.config.SOCKET_ID`).
- sends `DISCOVER_PEER_REQUEST:<socket id>` over UDP to port 9999. The request
  goes to the broadcast address of every local IPv4 interface. It is sent once
  at startup and then every 5 seconds.
- listens on UDP port 9999 for those requests. Its own requests are ignored.
  An unknown sender is recorded as a new peer. A known sender has its
  last-seen time refreshed.
- every 5 seconds, drops peers that have not been heard from for more than
  10 seconds.
- opens a TCP connection on port 9998 to each newly recorded peer that has no
  link yet, and sends a `HELLO` message carrying its own socket id.
- accepts TCP connections from other nodes on port 9998 and completes the
  `HELLO` handshake for them.
- checks `./Shared` every 2 seconds and logs files that were created, updated
  or deleted. A file counts as updated when its MD5 checksum changes.
  Subdirectories are not looked at.
- runs a transfer queue that starts at most two transfers at a time.

## Wire format

Every TCP message is a frame with two parts:

1. a 4-byte big-endian length;
2. that many bytes holding a JSON envelope `{"type": ..., "payload": ...}`.

There are two message types:

- `HELLO`, with payload `{"socket_id": "<id>"}`.
- `FILE_DIR`, with payload `{"files": [...]}`.

Until a connection has completed the `HELLO` handshake, it ignores every other
message. Frames that do not look like a JSON object are skipped. A frame that
looks like one but fails to decode closes the connection.

A transfer opens its own TCP connection. It sends
`START:<transfer id>,<file id>,<name>,<size>,<chunk size>` and then one
payload per chunk. Each chunk payload is made of `size` zero bytes, then
`CHUNK_<pos>,`, then the chunk data.

## Using the pieces

The modules can also be used on their own.

`peerlink.watcher`:

- `dir_stat(path)` snapshots a directory into a `DirStat`.
- `DirStat.compare(other)` returns the `FileSystemEvent`s that turn one
  snapshot into the other. Each event has an `EventType` of `CREATED`,
  `UPDATED` or `DELETED`.
- `file_checksum(path)` gives a file's hex MD5.
- `Watcher(path, cooldown, events)` puts events on a queue. `poll()` does a
  single check. `listen()` blocks until `stop()` is called.

`peerlink.protocol`:

- `create_json_message(type, payload)` builds a `TCPMessage`.
- `TCPMessage.send(conn)` writes the message as a frame.
- `receive_tcp_message(conn)` reads one frame. It raises `EOFError` if the
  stream ends first.
- `TCPMessage.get_json()` returns an `Envelope`.
- `parse_payload(envelope, cls)` turns an envelope into a `HelloMessage` or a
  `FileDirMessage`.

`peerlink.tcp`:

- `TCPServer.listen()` accepts connections.
- `create_tcp_connection(peer)` connects to a peer and sends `HELLO`.
- `TCPSocket.send_directory()` sends the shared directory's file names as a
  `FILE_DIR` message.

`peerlink.transfer`:

- `build_file(...)` splits bytes into `Chunk`s.
- `Transfer.start_payload()` gives the `START:` header.
- `Transfer.start()` sends a whole file and returns a `TransferResult`.
- `TransferQueue` runs queued transfers, two at a time. It skips a transfer
  whose id is already pending.

`peerlink.peer`:

- `get_peer_manager()` returns the process-wide `PeerManager`. Newly added
  peers appear on its `updates` queue.

`peerlink.discovery`:

- `broadcast_address(interface)` computes a network's broadcast address.
- `NetworkInterfaceManager.fetch_interfaces()` lists the local IPv4 addresses.
- `handle_discovery_message(...)` applies one received datagram.

## What it does not do

peerlink does not synchronise files. The `peerlink` command does not do any of
the following:

- It only logs watcher events.
- It only logs received `FILE_DIR` listings, and never sends one by itself.
- Nothing adds transfers to the transfer queue.
- Nothing receives `START:`/`CHUNK_` streams or writes incoming files to disk.

## Tests

```
pip install .[test]
pytest
```