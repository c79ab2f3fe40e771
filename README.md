# roomchat

Small TCP chat programs, from a one-to-one echo pair up to a multi-room chat
server whose users can send files to each other. Only the standard library is
used.

## The programs

Every server takes `--host` (default: all interfaces) and `--port`; every
client takes the server address and `--port`.

### Echo pair (port 1004)

    roomchat-echo-server
    roomchat-echo-client HOST

The server answers every message with the same bytes, one thread per client.
The client prompts `Please enter the message: `, sends the line and prints
`Message from server: ...`. An empty line ends the session.

### Broadcast relay (port 1004)

    roomchat-relay-server
    roomchat-relay-client HOST

Every message a client sends is forwarded to all other connected clients,
prefixed with the sender's address as `[address]:message`. The client reads
lines from standard input while printing whatever arrives; an empty line
disconnects.

### Rooms and file transfer (port 3000)

    roomchat-server
    roomchat-client HOST [ROOM | new]

Users join numbered rooms under a name that must be unique within the room.
Asking for a room number outside 1 to 100 is refused with
`Error: Room does not exist`; a taken name is refused with
`Error: Username already exists in this room`. Messages reach only the other
members of the same room, shown as `[name] message`, each name in its own
terminal colour.

Without a room argument the client first asks the server for the occupied
rooms and their head counts, then lets you pick a number or type `new` to
open a fresh room. Passing `new` or a room number on the command line skips
that step. After that the client asks for your user name. An empty line ends
the session.

To send a file to someone in your room, type:

    SEND <name> <filename>

The recipient is asked `Accept? (Y/N)`. On acceptance the sender's client
streams the file in 4096-byte chunks through the server, showing progress on
both sides. The received file is saved under its name, or under `name_1.ext`,
`name_2.ext`, ... if that name is already taken. If the recipient is not in
the sender's room the sender gets an error. The server drops transfers older
than ten minutes (checked every tenth message it handles) and tells both
parties of those still open; when either party leaves, the other is told the
transfer was cancelled.

## Library use

- `roomchat.protocol` — the wire format: the `Command` enum, `message_kind`,
  `parse_send_command`, `encode_room_number` / `decode_room_number`,
  `format_chunk` / `parse_chunk` (returning a `Chunk`), and
  `format_error` / `parse_error`.
- `roomchat.registry` — `Registry`, the thread-safe store of `User` and
  `Transfer` records, room counts, room allocation and transfer expiry.
  Methods that cancel transfers return the notices to send rather than
  sending them.
- `roomchat.server` — `ChatServer`, with `handle_client`, `broadcast`,
  `handle_transfer_command`, `handle_transfer_response`,
  `forward_transfer_data`, `send_room_list` and `serve`.
- `roomchat.client` — `ChatClient` (`handle_incoming`, `handle_input`,
  `handle_special`, `respond_to_transfer`, `receive_loop`, `send_loop`) and
  `choose_room`.
- `roomchat.colors` — `ColorPicker` and `colorize_message`.
- `roomchat.files` — `unique_filename`, `IncomingFile`, `iter_chunks` and
  `send_file`.
- `roomchat.echo_server` (`serve_client`, `run_server`),
  `roomchat.echo_client` (`chat`), `roomchat.relay_server` (`RelayServer`) and
  `roomchat.relay_client` (`receive_loop`, `send_loop`).

Loops and handlers take sockets and text streams as arguments, so they can be
driven from code and tests with socket pairs and `io.StringIO`.

## What it does not do

There are no accounts, passwords or encryption: names are only checked for
uniqueness within a room and all traffic is plain TCP. Nothing is stored;
rooms, users and transfers live in the server's memory and vanish when it
stops. Joins and departures are logged on the server's console but not
announced to the room.