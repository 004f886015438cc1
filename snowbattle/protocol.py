"""Wire protocol shared by the battle server and its clients.

Every packet starts with a one-byte total size and a one-byte type code,
followed by a packed little-endian body with no padding.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, fields
from enum import IntEnum
from typing import ClassVar

MAX_BUFFER = 4096
SERVER_PORT = 10001
SERVER_IP = "127.0.0.1"
MAX_CLIENTS = 100

MAX_NAME_SIZE = 20
MAX_CHAT_SIZE = 100
BUF_SIZE = 2048
TORNADO_ID = 100
MAX_BULLET_RANGE = 8
MAX_USER = 100
MAX_NPC = 100
MAX_OBJ = 20


class PacketType:
    """Packet type codes; the client and server code spaces overlap."""

    class CS(IntEnum):
        """Codes of packets sent by a client to the server."""

        LOGIN = 1
        MOVE = 2
        ATTACK = 3
        CHAT = 4
        TELEPORT = 5
        THROW_SNOW = 6
        DAMAGE = 7
        GET_ITEM = 8
        LOGOUT = 9
        STATUS_CHANGE = 10
        READY = 11
        STOP_SNOW_FARMING = 12
        MATCH = 13
        OPEN_BOX = 14
        GUNATTACK = 15
        GUNFIRE = 16
        UMB = 17
        ACCOUNT = 18
        CANCEL_SNOW = 19
        PLAYER_COUNT = 20
        PUT_OBJECT = 21
        NPC_MOVE = 22
        FREEZE = 23

    class SC(IntEnum):
        """Codes of packets sent by the server to a client."""

        LOGIN_OK = 1
        MOVE = 2
        PUT_OBJECT = 3
        REMOVE_OBJECT = 4
        CHAT = 5
        LOGIN_FAIL = 6
        STATUS_CHANGE = 7
        DISCONNECT = 8
        HP = 9
        THROW_SNOW = 10
        ATTACK = 11
        GET_ITEM = 12
        READY = 13
        START = 14
        STOP_SNOW_FARMING = 15
        IS_BONE = 16
        LOGOUT = 17
        END = 18
        OPEN_BOX = 19
        GUNATTACK = 20
        GUNFIRE = 21
        TELEPORT = 22
        UMB = 23
        ACCOUNT = 24
        CANCEL_SNOW = 25
        PLAYER_COUNT = 26
        NPC_MOVE = 27
        KILL_LOG = 28
        FREEZE = 29


class ItemType(IntEnum):
    MATCH = 0
    UMBRELLA = 1
    BAG = 2
    SNOW = 3
    JET_SKI = 4
    ICE = 5
    SUPPLY_BOX = 6


class ObjectType(IntEnum):
    PLAYER = 0
    ITEM_BOX = 1
    TORNADO = 2
    SUPPLY_BOX = 3


class LoginFailReason(IntEnum):
    OVERLAP_ID = 0
    WRONG_ID = 1
    WRONG_PW = 2
    OVERLAP_ACCOUNT = 3
    CREATE_ACCOUNT = 4


class BulletType(IntEnum):
    SNOWBALL = 0
    ICEBALL = 1
    SNOWBOMB = 2


class CheatType(IntEnum):
    HP_UP = 1
    HP_DOWN = 2
    SNOW_PLUS = 3
    ICE_PLUS = 4


class CauseOfDeath(IntEnum):
    SNOWBALL = 0
    SNOWBALL_BOMB = 1
    COLD = 2
    SNOWMAN = 3


class PlayerState(IntEnum):
    SNOWMAN = 0
    IN_BURN = 1
    OUT_BURN = 2
    ANIMAL = 3
    TORNADO = 4


class ConnectionState(IntEnum):
    FREE = 0
    ACCEPT = 1
    IN_GAME = 2
    SERVER = 3


class ServerState(IntEnum):
    FREE = 0
    MATCHING = 1
    USING = 2


class EventType(IntEnum):
    BONFIRE = 0
    BONE_OUT = 1
    MATCH = 2
    END_MATCH = 3
    SUPPLY_DROP = 4
    GAME_OVER = 5


class Command(IntEnum):
    RECV = 0
    SEND = 1
    ACCEPT = 2
    NPC_MOVE = 3
    NPC_ATTACK = 4
    PLAYER_MOVE = 5
    PLAYER_ATTACK = 6
    PLAYER_RE = 7
    PLAYER_HEAL = 8
    PLAYER_DAMAGE = 9
    OBJ_SPAWN = 10
    SERVER_RECV = 11
    SERVER_SEND = 12
    SERVER_RECYCLE = 13


_NAME = f"{MAX_NAME_SIZE}s"


@dataclass
class Packet:
    """A packet with no body; subclasses add fields described by ``CODES``.

    ``CODES`` holds one struct code per field after ``type``: scalar codes
    such as ``i`` or ``f``, ``<n>s`` for a NUL-terminated string and
    ``<n>i`` for a fixed-length array of integers.
    """

    type: int = 0
    CODES: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def _format(cls) -> str:
        return "<BB" + "".join(cls.CODES)

    @classmethod
    def wire_size(cls) -> int:
        """Number of bytes the packet takes on the wire."""
        return struct.calcsize(cls._format())

    def _body_fields(self):
        return fields(self)[1:]

    def pack(self) -> bytes:
        """Encode the packet, size and type byte included."""
        values: list = []
        for code, field in zip(self.CODES, self._body_fields()):
            value = getattr(self, field.name)
            count = code[:-1]
            if code.endswith("s"):
                raw = value.encode("utf-8") if isinstance(value, str) else bytes(value)
                if len(raw) >= int(count):
                    raise ValueError(
                        f"{field.name} is {len(raw)} bytes, at most {int(count) - 1} fit"
                    )
                values.append(raw)
            elif count:
                items = tuple(value)
                if len(items) != int(count):
                    raise ValueError(f"{field.name} needs exactly {count} values")
                values.extend(items)
            else:
                values.append(value)
        try:
            return struct.pack(self._format(), self.wire_size(), int(self.type), *values)
        except struct.error as exc:
            raise ValueError(f"cannot encode {type(self).__name__}: {exc}") from exc

    @classmethod
    def unpack(cls, data: bytes) -> Packet:
        """Decode a packet of this class from the start of ``data``."""
        size = cls.wire_size()
        if len(data) < size:
            raise ValueError(f"{cls.__name__} needs {size} bytes, got {len(data)}")
        raw = struct.unpack_from(cls._format(), data)
        values = iter(raw[2:])
        kwargs = {}
        for code, field in zip(cls.CODES, fields(cls)[1:]):
            count = code[:-1]
            if code.endswith("s"):
                text = next(values).split(b"\0", 1)[0]
                kwargs[field.name] = text.decode("utf-8", errors="replace")
            elif count:
                kwargs[field.name] = tuple(next(values) for _ in range(int(count)))
            else:
                kwargs[field.name] = next(values)
        return cls(type=raw[1], **kwargs)


@dataclass
class LoginRequest(Packet):
    type: int = PacketType.CS.LOGIN
    name: str = ""
    password: str = ""
    z: float = 0.0
    CODES = (_NAME, _NAME, "f")


@dataclass
class LoginOk(Packet):
    type: int = PacketType.SC.LOGIN_OK
    session_id: int = 0
    color: int = 0
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    yaw: float = 0.0
    name: str = ""
    password: str = ""
    CODES = ("i", "i", "f", "f", "f", "f", _NAME, _NAME)


@dataclass
class LoginFail(Packet):
    type: int = PacketType.SC.LOGIN_FAIL
    reason: int = 0
    CODES = ("i",)


@dataclass
class Logout(Packet):
    type: int = PacketType.CS.LOGOUT
    session_id: int = 0
    CODES = ("i",)


@dataclass
class Move(Packet):
    type: int = PacketType.CS.MOVE
    session_id: int = 0
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    vx: float = 0.0
    vy: float = 0.0
    vz: float = 0.0
    yaw: float = 0.0
    direction: float = 0.0
    CODES = ("i", "f", "f", "f", "f", "f", "f", "f", "f")


@dataclass
class PutObject(Packet):
    type: int = PacketType.SC.PUT_OBJECT
    session_id: int = 0
    obj_id: int = 0
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    yaw: float = 0.0
    object_type: int = 0
    name: str = ""
    CODES = ("i", "i", "f", "f", "f", "f", "b", _NAME)


@dataclass
class RemoveObject(Packet):
    type: int = PacketType.SC.REMOVE_OBJECT
    session_id: int = 0
    CODES = ("i",)


@dataclass
class ThrowSnow(Packet):
    type: int = PacketType.CS.THROW_SNOW
    session_id: int = 0
    bullet: int = 0
    ball_x: float = 0.0
    ball_y: float = 0.0
    ball_z: float = 0.0
    yaw: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0
    speed: float = 0.0
    CODES = ("i", "i", "f", "f", "f", "f", "f", "f", "f")


@dataclass
class CancelSnow(Packet):
    type: int = PacketType.CS.CANCEL_SNOW
    session_id: int = 0
    bullet: int = 0
    CODES = ("i", "i")


@dataclass
class GunFire(Packet):
    type: int = PacketType.CS.GUNFIRE
    session_id: int = 0
    pitch: float = 0.0
    spread: tuple[int, ...] = (0,) * MAX_BULLET_RANGE
    CODES = ("i", "f", f"{MAX_BULLET_RANGE}i")


@dataclass
class Damage(Packet):
    type: int = PacketType.CS.DAMAGE
    attacker: int = 0
    bullet: int = 0
    CODES = ("i", "i")


@dataclass
class Umbrella(Packet):
    type: int = PacketType.CS.UMB
    session_id: int = 0
    end: bool = False
    CODES = ("i", "?")


@dataclass
class HpChange(Packet):
    type: int = PacketType.SC.HP
    session_id: int = 0
    hp: int = 0
    CODES = ("i", "i")


@dataclass
class Attack(Packet):
    type: int = PacketType.CS.ATTACK
    session_id: int = 0
    bullet: int = 0
    CODES = ("i", "i")


@dataclass
class Cheat(Packet):
    type: int = PacketType.CS.CHAT
    session_id: int = 0
    cheat_type: int = 0
    CODES = ("i", "i")


@dataclass
class GetItem(Packet):
    type: int = PacketType.CS.GET_ITEM
    session_id: int = 0
    item_type: int = 0
    current_bullet: int = 0
    destroy_obj_id: int = 0
    CODES = ("i", "i", "i", "i")


@dataclass
class OpenBox(Packet):
    type: int = PacketType.CS.OPEN_BOX
    open_obj_id: int = 0
    CODES = ("i",)


@dataclass
class ChatMessage(Packet):
    type: int = PacketType.SC.CHAT
    sender_id: int = 0
    message: str = ""
    CODES = ("i", f"{MAX_CHAT_SIZE}s")


@dataclass
class StatusChange(Packet):
    type: int = PacketType.CS.STATUS_CHANGE
    session_id: int = 0
    state: int = 0
    CODES = ("i", "i")


@dataclass
class ReadyNotice(Packet):
    type: int = PacketType.SC.READY
    session_id: int = 0
    CODES = ("i",)


@dataclass
class StartGame(Packet):
    type: int = PacketType.SC.START


@dataclass
class IsBone(Packet):
    type: int = PacketType.SC.IS_BONE


@dataclass
class GameEnd(Packet):
    type: int = PacketType.SC.END
    session_id: int = 0
    CODES = ("i",)


@dataclass
class PlayerCount(Packet):
    type: int = PacketType.SC.PLAYER_COUNT
    snowman: int = 0
    bear: int = 0
    CODES = ("i", "i")


@dataclass
class KillLog(Packet):
    type: int = PacketType.SC.KILL_LOG
    attacker: int = 0
    victim: int = 0
    cause: int = 0
    CODES = ("i", "i", "i")


@dataclass
class Freeze(Packet):
    type: int = PacketType.CS.FREEZE
    session_id: int = 0
    body_part: int = 0
    CODES = ("i", "i")


_CS = PacketType.CS
_SC = PacketType.SC

_CLIENT_PACKETS: dict[int, type[Packet]] = {
    _CS.LOGIN: LoginRequest,
    _CS.ACCOUNT: LoginRequest,
    _CS.MOVE: Move,
    _CS.NPC_MOVE: Move,
    _CS.ATTACK: Attack,
    _CS.GUNATTACK: Attack,
    _CS.CHAT: Cheat,
    _CS.THROW_SNOW: ThrowSnow,
    _CS.CANCEL_SNOW: CancelSnow,
    _CS.DAMAGE: Damage,
    _CS.GET_ITEM: GetItem,
    _CS.LOGOUT: Logout,
    _CS.STATUS_CHANGE: StatusChange,
    _CS.READY: Packet,
    _CS.MATCH: Packet,
    _CS.OPEN_BOX: OpenBox,
    _CS.GUNFIRE: GunFire,
    _CS.UMB: Umbrella,
    _CS.PUT_OBJECT: PutObject,
    _CS.FREEZE: Freeze,
}

_SERVER_PACKETS: dict[int, type[Packet]] = {
    _SC.LOGIN_OK: LoginOk,
    _SC.MOVE: Move,
    _SC.NPC_MOVE: Move,
    _SC.PUT_OBJECT: PutObject,
    _SC.REMOVE_OBJECT: RemoveObject,
    _SC.CHAT: ChatMessage,
    _SC.LOGIN_FAIL: LoginFail,
    _SC.STATUS_CHANGE: StatusChange,
    _SC.HP: HpChange,
    _SC.THROW_SNOW: ThrowSnow,
    _SC.CANCEL_SNOW: CancelSnow,
    _SC.ATTACK: Attack,
    _SC.GUNATTACK: Attack,
    _SC.GET_ITEM: GetItem,
    _SC.READY: ReadyNotice,
    _SC.START: StartGame,
    _SC.IS_BONE: IsBone,
    _SC.LOGOUT: Logout,
    _SC.END: GameEnd,
    _SC.OPEN_BOX: OpenBox,
    _SC.GUNFIRE: GunFire,
    _SC.UMB: Umbrella,
    _SC.PLAYER_COUNT: PlayerCount,
    _SC.KILL_LOG: KillLog,
    _SC.FREEZE: Freeze,
}


def _decode(data: bytes, table: dict[int, type[Packet]], direction: str) -> Packet:
    if len(data) < 2:
        raise ValueError("a packet needs at least a size and a type byte")
    packet_class = table.get(data[1])
    if packet_class is None:
        raise ValueError(f"unknown {direction} packet type {data[1]}")
    return packet_class.unpack(data)


def decode_client_packet(data: bytes) -> Packet:
    """Decode a packet sent by a client, chosen by its type byte."""
    return _decode(data, _CLIENT_PACKETS, "client")


def decode_server_packet(data: bytes) -> Packet:
    """Decode a packet sent by the server, chosen by its type byte."""
    return _decode(data, _SERVER_PACKETS, "server")