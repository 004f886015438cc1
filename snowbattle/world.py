"""Shared game state: connected players, pickups and battle-server slots."""

from __future__ import annotations

import threading
from typing import Callable, Iterator

from .protocol import (
    MAX_NPC,
    MAX_USER,
    ConnectionState,
    Packet,
    PlayerState,
    ServerState,
)

MAX_WORKER_THREADS = 10
NEAR_RANGE = 10000
BONFIRE_RANGE = 1700
DEFAULT_SNOWDRIFTS = 100
DEFAULT_ITEMS = 100


class WorldFullError(RuntimeError):
    """Raised when every player slot is taken."""


class Client:
    """One player or NPC slot and everything the server knows about it."""

    MAX_HP = 390
    MIN_HP = 270
    BEGIN_SLOW_HP = 300

    ORIGIN_MAX_MATCHES = 2
    ORIGIN_MAX_SNOWBALLS = 10
    ORIGIN_MAX_ICEBALLS = 10

    BAG_MAX_MATCHES = 3
    BAG_MAX_SNOWBALLS = 15
    BAG_MAX_ICEBALLS = 15

    def __init__(self, session_id: int = 0) -> None:
        self.session_id = session_id
        self.lock = threading.RLock()
        self.connection_state = ConnectionState.FREE
        self.player_state: PlayerState | None = None
        self.color = 0
        self.transport: Callable[[bytes], None] | None = None
        self.outbox: list[bytes] = []
        self._reset_game_data()

    def _reset_game_data(self) -> None:
        self.name = ""
        self.login_id = ""
        self.password = ""
        self.x = self.y = self.z = 0.0
        self.yaw = self.pitch = self.roll = 0.0
        self.vx = self.vy = self.vz = 0.0
        self.direction = 0.0
        self.hp = self.MAX_HP
        self.attack_range = 1
        self.skill_range = 2
        self.is_bone = True
        self.is_match = False
        self.max_snowballs = self.ORIGIN_MAX_SNOWBALLS
        self.max_iceballs = self.ORIGIN_MAX_ICEBALLS
        self.max_matches = self.ORIGIN_MAX_MATCHES
        self.snowballs = 0
        self.iceballs = 0
        self.matches = 0
        self.has_umbrella = False
        self.is_riding = False
        self.has_bag = False
        self.has_shotgun = False
        self.is_snowman = False
        self.ready = False
        self.dot_damage = False
        self.view_list: set[int] = set()
        self.is_active = False
        self.combat = None
        self.count = 0
        self.prev_size = 0
        self.last_move_time = 0

    def reset(self) -> None:
        """Restore the game data of a fresh slot; the slot id is kept."""
        with self.lock:
            self._reset_game_data()

    def send(self, packet: Packet | bytes) -> bytes:
        """Encode ``packet`` and hand it to the transport, or queue it in ``outbox``."""
        data = packet.pack() if isinstance(packet, Packet) else bytes(packet)
        if self.transport is None:
            self.outbox.append(data)
        else:
            self.transport(data)
        return data

    def turn_into_snowman(self) -> None:
        """Drop every item, reset capacities and become a snowman at minimum HP."""
        with self.lock:
            self.hp = self.MIN_HP
            self.snowballs = 0
            self.iceballs = 0
            self.matches = 0
            self.max_snowballs = self.ORIGIN_MAX_SNOWBALLS
            self.max_iceballs = self.ORIGIN_MAX_ICEBALLS
            self.max_matches = self.ORIGIN_MAX_MATCHES
            self.has_bag = False
            self.has_shotgun = False
            self.has_umbrella = False
            self.is_snowman = True

    def __repr__(self) -> str:
        return (
            f"Client(session_id={self.session_id}, "
            f"state={self.connection_state.name}, hp={self.hp})"
        )


class ServerSlot:
    """A battle server as seen from the lobby: its port, players and state."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = ServerState.FREE
        self.match_users = 0
        self.port = -1

    @property
    def state(self) -> ServerState:
        with self._lock:
            return self._state

    def set_state(self, state: ServerState) -> bool:
        """Switch to ``state``; return False if already in it."""
        with self._lock:
            if self._state == state:
                return False
            self._state = ServerState(state)
            return True

    def reset(self) -> None:
        """Forget the matched users and the port."""
        self.match_users = 0
        self.port = -1


class GameWorld:
    """All clients and world pickups of one battle."""

    def __init__(
        self,
        snowdrifts: int = DEFAULT_SNOWDRIFTS,
        items: int = DEFAULT_ITEMS,
    ) -> None:
        self._snowdrift_count = snowdrifts
        self._item_count = items
        self._snow_lock = threading.Lock()
        self._item_lock = threading.Lock()
        self._supply_lock = threading.Lock()
        self._color_lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        """Start a new battle: fresh clients and every pickup available again."""
        self.clients = [Client(i) for i in range(MAX_USER + MAX_NPC)]
        self.snowdrifts = [True] * self._snowdrift_count
        self.icedrifts = [True] * self._snowdrift_count
        self.items = [True] * self._item_count
        self.supply_items = [True] * self._item_count
        self.game_started = False
        self.tornado = False
        self._color = 0

    def is_player(self, client_id: int) -> bool:
        """True for ids of human player slots."""
        return 0 <= client_id < MAX_USER

    def is_bonfire(self, client_id: int) -> bool:
        """True if the client stands within the bonfire square at the centre."""
        client = self.clients[client_id]
        return abs(client.x) <= BONFIRE_RANGE and abs(client.y) <= BONFIRE_RANGE

    def is_near(self, a: int, b: int) -> bool:
        """True if two clients are within viewing range on both axes."""
        first, second = self.clients[a], self.clients[b]
        return (
            abs(first.x - second.x) <= NEAR_RANGE
            and abs(first.y - second.y) <= NEAR_RANGE
        )

    @staticmethod
    def _take(flags: list[bool], lock: threading.Lock, obj_id: int) -> bool:
        if not 0 <= obj_id < len(flags):
            raise IndexError(f"object id {obj_id} out of range 0..{len(flags) - 1}")
        with lock:
            if flags[obj_id]:
                flags[obj_id] = False
                return True
            return False

    def take_snowdrift(self, obj_id: int) -> bool:
        """Claim a snowdrift; True only for the first taker."""
        return self._take(self.snowdrifts, self._snow_lock, obj_id)

    def take_icedrift(self, obj_id: int) -> bool:
        """Claim an ice drift; True only for the first taker."""
        return self._take(self.icedrifts, self._snow_lock, obj_id)

    def take_item(self, obj_id: int) -> bool:
        """Claim an item from a box; True only for the first taker."""
        return self._take(self.items, self._item_lock, obj_id)

    def take_supply_item(self, obj_id: int) -> bool:
        """Claim a supply drop; True only for the first taker."""
        return self._take(self.supply_items, self._supply_lock, obj_id)

    def in_game(self) -> Iterator[Client]:
        """Iterate over the clients that are currently in the game."""
        return (c for c in self.clients if c.connection_state == ConnectionState.IN_GAME)

    def allocate_id(self) -> int:
        """Reserve the first free player slot and return its id."""
        for client_id, client in enumerate(self.clients[:MAX_USER]):
            with client.lock:
                if client.connection_state == ConnectionState.FREE:
                    client.connection_state = ConnectionState.ACCEPT
                    return client_id
        raise WorldFullError("maximum number of clients reached")

    def next_color(self) -> int:
        """Hand out character colours in order, starting from zero."""
        with self._color_lock:
            color = self._color
            self._color += 1
            return color

    def player_counts(self) -> tuple[int, int]:
        """Return (bears, snowmen) among the clients in the game."""
        bears = snowmen = 0
        for client in self.in_game():
            if client.is_snowman:
                snowmen += 1
            else:
                bears += 1
        return bears, snowmen