# snowbattle

The server side of a multiplayer snowball shooter, the binary wire protocol
the game speaks, and a small bot client that drives the tornado NPCs.

Players walk around the map, pick up snow, ice, matches, umbrellas, bags and
supply boxes, and throw snowballs at each other. Standing at the bonfire
heals a player; staying away from it slowly freezes them. A player whose HP
falls to the minimum becomes a snowman. When only one player is not a
snowman, the match ends and the server recycles itself for the next one.

## Installation

```
pip install .
```

The package uses only the standard library. For the tests:

```
pip install .[test]
pytest
```

## Running the battle server

```
snowbattle-server                    # listens on 0.0.0.0, port 10001
snowbattle-server 10005              # listens on port 10005
snowbattle-server 10005 --host 127.0.0.1
```

The server accepts TCP connections and gives each one a free slot in the
player table; when every slot is taken the connection is closed. Incoming
bytes are split into packets and handed to the packet manager, which updates
the game state and sends the results to the players in the game.

Once every player in the game has sent a ready packet, the game starts and
the timer loop begins: bonfire healing and cold damage ticks, a supply box
dropped at a random spot every 60 seconds, and, 30 seconds after a match has
a winner, a recycle that closes all connections and resets the world.

The server can also be run from code:

```python
import asyncio
from snowbattle.server import BattleServer

asyncio.run(BattleServer("127.0.0.1", 10005).serve_forever())
```

## Library overview

- `snowbattle.protocol`: packet type codes (`PacketType.CS`,
  `PacketType.SC`), the game's enumerations, and the packed little-endian
  packet records (`LoginRequest`, `Move`, `PutObject`, `StatusChange`,
  `KillLog`, …). Every record has `pack()` and the class method
  `unpack(data)`. `decode_client_packet` and `decode_server_packet` pick the
  record by the type byte and raise `ValueError` for an unknown type.
- `snowbattle.framing`: `split_packets` cuts a buffer into whole packets,
  where the first byte of each is its total length, and returns the leftover
  bytes. `PacketAssembler.feed` does the same across received chunks;
  `pending()` shows what is held back. A zero length byte raises `ValueError`.
- `snowbattle.lockqueue`: `LockQueue` and `LockStack`, thread-safe FIFO and
  LIFO containers with `push`, `try_pop` (returns `None` when empty) and
  `wait_pop(timeout)` (raises `TimeoutError`).
- `snowbattle.world`: `Client` (one player or NPC slot), `ServerSlot`, and
  `GameWorld`, which holds the player table, the one-shot pickup tables
  (`take_snowdrift`, `take_item`, …), slot allocation and head counts.
- `snowbattle.timers`: `TimerEvent` and `TimerQueue`, which hand out events
  earliest first; `pop_due(now)` takes every event that has fallen due.
- `snowbattle.items`: the rules for pickups, throwing, the shotgun and its
  pellet spread, umbrellas, boxes and freezing.
- `snowbattle.manager`: `PacketManager`, which handles each incoming client
  packet: logins, movement, attacks, damage, matches, cheats, ready and
  status changes.
- `snowbattle.server`: `BattleServer`, the asyncio server, and `main`.
- `snowbattle.client`: `TornadoClient`, a bot that logs in as `Tornado`
  and sends the tornado NPC positions with `send_move`.

### Example

```python
from snowbattle.framing import PacketAssembler
from snowbattle.protocol import LoginRequest, decode_client_packet

password = "password"
raw = LoginRequest(name="player1", password=password, z=100.0).pack()

assembler = PacketAssembler()
for packet in assembler.feed(raw[:5]) + assembler.feed(raw[5:]):
    print(decode_client_packet(packet))
```

## What it does not do

- There is no account storage. Account creation requests are ignored, and an
  ordinary login is only checked against players already in the game; it is
  not accepted. The `Tornado` login and the `testuser` test login are the
  ones that enter the game.
- The battle server does not register with or report to a lobby or
  matchmaking service; it runs one battle on its own port.
- There is no game client for players; `TornadoClient` only drives the
  tornado NPCs and has no command of its own.