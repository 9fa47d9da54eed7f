# dfdl

A library for the client side of a peer-to-peer file sharing network. A client
indexes (shares) files with a network of index servers, serves chunks of those
files to other peers, and downloads files from several peers at once, chunk by
chunk.

## Installing

    pip install .

## Modules

- `dfdl.messages`: the `MessageCode` enum, the `SourceInfo` and `FileId`
  dataclasses, and builders/parsers for client–server messages (index, drop,
  reregister, source requests and lists, control requests, server
  registration). Malformed messages raise `MessageError`.
- `dfdl.peer_messages`: peer-to-peer download messages: download init and
  confirm, chunk requests, and `DataChunk`.
- `dfdl.byte_order`: `get_ip_bytes` and `ip_bytes_to_string` for IPv4 addresses.
- `dfdl.net`: sockets and framing. A TCP message is an eight-byte big-endian
  length followed by the bytes (`send_message`, `recv_message`); UDP helpers
  send and receive single datagrams of at most 1472 bytes.
- `dfdl.file_util` and `dfdl.file_parsing`: splitting a file into chunks
  (1 MiB by default, see `set_chunk_size`), storing received chunks in the
  download directory as `<name>-<chunk>`, assembling them into the finished
  file, and `sha256_hash`, the file identifier: the first eight bytes of the
  file's SHA-256 digest. The download directory defaults to the first usable
  of `$XDG_DOWNLOAD_DIR`, `~/dfd` and the current directory.
- `dfdl.client_configs`: reading and writing the host list
  (`get_host_list_from_disk`, `store_host_list_to_disk`) and loading or
  creating the client's identifier (`get_my_uuid`).
- `dfdl.client_networking`: connecting to a peer or server and exchanging
  messages whose reply code is checked; failures raise `PeerError`.
- `dfdl.server_requests`: one request to one server (`attempt_index`,
  `attempt_drop`, `attempt_control`, `attempt_source_retrieval`,
  `attempt_server_update`).
- `dfdl.operations`: `do_attempts` retries a request across every known
  server, doubling the connection timeout on each of three tries and
  repeating the round once; `do_index` and `do_drop` build on it.
- `dfdl.peer_download` and `dfdl.download`: `do_download` asks the servers for
  a file's sources, fetches chunk 0 from the first peer that answers, then
  downloads the rest with up to five worker threads, and reports peers that
  failed back to the servers.
- `dfdl.seed`: `ClientListener` accepts peer connections and serves chunks of
  indexed files, each peer in its own thread.
- `dfdl.commands`: `parse_command` turns a line such as `download 42` into a
  `Command` and its argument; `format_file_list` and `help_text` give the
  text for the `list` and `help` commands.

## Host file format

One server per line, three fields separated by commas or spaces:

    # id, address, port
    0, 127.0.0.1, 5000

Blank lines and lines starting with `#` are ignored.

## Example

```python
import threading

from dfdl.messages import SourceInfo, create_source_list, parse_source_list
from dfdl.seed import ClientListener

sources = [SourceInfo(peer_id=1, ip_addr="127.0.0.1", port=5000)]
assert parse_source_list(create_source_list(sources)) == sources

indexed_files: dict[int, str] = {}
with ClientListener(indexed_files, threading.Lock()) as listener:
    print("serving peers on port", listener.port)
```

## What this package does not do

- It installs no command: there is no command-line program and no interactive
  prompt loop. `dfdl.commands` parses and formats command lines, but running
  a client session is left to the caller.
- It contains no index server. The server side of the network is only spoken
  to, through the messages in `dfdl.messages`.

## Tests

    pip install .[test]
    pytest