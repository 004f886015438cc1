"""Game logic for the packets a battle server receives from its players."""

from __future__ import annotations

import logging
import math
import random
from dataclasses import replace
from typing import Callable

from . import items
from .protocol import (
    MAX_USER,
    Attack,
    BulletType,
    CauseOfDeath,
    Cheat,
    CheatType,
    ConnectionState,
    Damage,
    EventType,
    GameEnd,
    GetItem,
    HpChange,
    ItemType,
    KillLog,
    LoginFail,
    LoginFailReason,
    LoginOk,
    LoginRequest,
    Move,
    ObjectType,
    Packet,
    PacketType,
    PlayerCount,
    PlayerState,
    PutObject,
    ReadyNotice,
    StartGame,
    StatusChange,
    decode_client_packet,
)
from .timers import GM_ID, TimerQueue
from .world import Client, GameWorld

log = logging.getLogger(__name__)

TORNADO_LOGIN = "Tornado"
GM_LOGIN = "testuser"
TORNADO_COUNT = 3

HIT_DAMAGE = 30
MATCH_HEAL = 30
CHEAT_HP_STEP = 30
CHEAT_BALL_STEP = 5

HEAL_DELAY = 1.0
COLD_DELAY = 1.0
SUPPLY_DROP_DELAY = 60.0
GAME_OVER_DELAY = 30.0

SPAWN_RADIUS = 600.0

_CS = PacketType.CS
_SC = PacketType.SC


class PacketManager:
    """Applies client packets to a game world and answers the players."""

    def __init__(
        self,
        world: GameWorld | None = None,
        timers: TimerQueue | None = None,
        *,
        rng: random.Random | None = None,
        on_game_start: Callable[[], None] | None = None,
        on_game_end: Callable[[int], None] | None = None,
    ) -> None:
        self.world = world if world is not None else GameWorld()
        self.timers = timers if timers is not None else TimerQueue()
        self.rng = rng
        self.on_game_start = on_game_start
        self.on_game_end = on_game_end
        w = lambda: self.world  # noqa: E731
        self._handlers: dict[int, Callable[[Client, Packet], object]] = {
            _CS.LOGIN: self.login,
            _CS.ACCOUNT: self.create_account,
            _CS.MOVE: self.move,
            _CS.ATTACK: lambda c, p: self.attack(c, p, False),
            _CS.GUNATTACK: lambda c, p: self.attack(c, p, True),
            _CS.DAMAGE: self.damage,
            _CS.MATCH: lambda c, p: self.use_match(c),
            _CS.UMB: lambda c, p: items.use_umbrella(w(), c, p),
            _CS.CHAT: self.cheat,
            _CS.GET_ITEM: lambda c, p: items.pick_up(w(), c, p),
            _CS.THROW_SNOW: lambda c, p: items.throw_snow(w(), c, p),
            _CS.CANCEL_SNOW: lambda c, p: items.cancel_snow(w(), c, p),
            _CS.GUNFIRE: lambda c, p: items.gun_fire(w(), c, p, self.rng),
            _CS.LOGOUT: self._logout,
            _CS.STATUS_CHANGE: self.set_status,
            _CS.READY: lambda c, p: self.ready(c),
            _CS.OPEN_BOX: lambda c, p: items.open_box(w(), c, p),
            _CS.PUT_OBJECT: lambda c, p: items.put_object(w(), c, p),
            _CS.NPC_MOVE: self.npc_move,
            _CS.FREEZE: lambda c, p: items.freeze(w(), c, p),
        }

    # ----------------------------------------------------------------- dispatch

    def process(self, client_id: int, data: bytes):
        """Decode one packet from ``client_id`` and apply it.

        Returns what the handler returned. Raises ValueError for a packet
        whose type the server does not handle.
        """
        client = self.world.clients[client_id]
        packet = decode_client_packet(data)
        handler = self._handlers.get(packet.type)
        if handler is None:
            raise ValueError(f"unhandled client packet type {packet.type}")
        return handler(client, packet)

    def _logout(self, client: Client, packet: Packet) -> None:
        log.info("player %d sent logout", client.session_id)

    # ------------------------------------------------------------------ helpers

    def _broadcast(self, packet: Packet, exclude: int | None = None) -> int:
        sent = 0
        for other in list(self.world.in_game()):
            if exclude is not None and other.session_id == exclude:
                continue
            other.send(packet)
            sent += 1
        return sent

    def _send_hp(self, client: Client) -> None:
        client.send(HpChange(type=_SC.HP, session_id=client.session_id, hp=client.hp))

    def _send_login_ok(self, client: Client) -> None:
        client.send(
            LoginOk(
                session_id=client.session_id,
                color=client.color,
                x=client.x,
                y=client.y,
                z=client.z,
                yaw=client.yaw,
                name=client.login_id,
            )
        )

    def _send_player_counts(self) -> None:
        bears, snowmen = self.world.player_counts()
        self._broadcast(PlayerCount(snowman=snowmen, bear=bears))

    def _survivors(self, victim_id: int, exclude_victim: bool) -> list[int]:
        return [
            other.session_id
            for other in self.world.in_game()
            if not other.is_snowman
            and not (exclude_victim and other.session_id == victim_id)
        ]

    def _end_game(self, winner: int) -> None:
        self._broadcast(GameEnd(session_id=winner))
        if self.on_game_end is not None:
            self.on_game_end(winner)
        log.info("game over, player %d wins", winner)

    @staticmethod
    def _add_up_to(current: int, amount: int, limit: int) -> int:
        return current + amount if limit >= current + amount else limit

    def _lose_hp(self, client: Client) -> None:
        before = client.hp
        client.hp = max(client.hp - HIT_DAMAGE, Client.MIN_HP)
        self._send_hp(client)
        if before == Client.MAX_HP and client.is_bone:
            client.is_active = True
            self.bonfire_heal(client.session_id)

    # ------------------------------------------------------------------- login

    def login(self, client: Client, packet: LoginRequest) -> bool:
        """Log a player, the GM test account or the tornado driver in."""
        if packet.name == TORNADO_LOGIN:
            self.world.tornado = True
            client.player_state = PlayerState.TORNADO
            self._send_login_ok(client)
            return True

        if packet.name == GM_LOGIN:
            gm_name = f"{packet.name}{client.session_id}"
            self.set_position(client, gm_name, packet.password, packet.z)
            client.color = self.world.next_color()
            log.info("GM %s logged in", client.login_id)
            self._send_login_ok(client)
            self.send_player_info(client)
            return True

        log.info("login request from %s, z=%f", packet.name, packet.z)
        for other in self.world.clients[:MAX_USER]:
            with other.lock:
                duplicate = (
                    other.connection_state == ConnectionState.IN_GAME
                    and other.login_id == packet.name
                )
            if duplicate:
                log.info("%s is already connected", packet.name)
                client.send(LoginFail(reason=LoginFailReason.OVERLAP_ACCOUNT))
                return False
        log.info("no account store; login of %s left pending", packet.name)
        return True

    def create_account(self, client: Client, packet: LoginRequest) -> bool:
        """Account creation request; the battle server keeps no accounts."""
        if packet.name != TORNADO_LOGIN:
            log.info("account request for %s ignored", packet.name)
        return True

    def set_position(self, client: Client, name: str, password: str, z: float) -> None:
        """Put a newly logged-in player in the game at its spawn point."""
        sid = client.session_id
        client.login_id = name
        client.password = password
        client.connection_state = ConnectionState.IN_GAME
        client.x = SPAWN_RADIUS * math.cos(sid + 45.0)
        client.y = SPAWN_RADIUS * math.sin(sid + 45.0)
        client.z = z
        client.yaw = sid * 55.0 - 115.0
        if client.yaw > 180:
            client.yaw -= 360
        client.hp = Client.MAX_HP

    def send_player_info(self, client: Client) -> None:
        """Introduce a new player to the others and the others to it."""
        others = [
            other
            for other in self.world.in_game()
            if other.session_id != client.session_id
            and other.player_state != PlayerState.TORNADO
        ]
        for other in others:
            other.send(
                PutObject(
                    session_id=client.session_id,
                    obj_id=client.color,
                    x=client.x,
                    y=client.y,
                    z=client.z,
                    yaw=client.yaw,
                    object_type=ObjectType.PLAYER,
                    name=client.login_id,
                )
            )
        for other in others:
            client.send(
                PutObject(
                    session_id=other.session_id,
                    obj_id=other.color,
                    x=other.x,
                    y=other.y,
                    z=other.z,
                    yaw=other.yaw,
                    object_type=ObjectType.PLAYER,
                    name=other.login_id,
                )
            )
        if self.world.tornado:
            for npc in self.world.clients[MAX_USER : MAX_USER + TORNADO_COUNT]:
                log.info(
                    "tornado %d at (%f, %f, %f)", npc.session_id, npc.x, npc.y, npc.z
                )
                client.send(
                    PutObject(
                        session_id=npc.session_id,
                        x=npc.x,
                        y=npc.y,
                        z=npc.z,
                        yaw=0.0,
                        object_type=ObjectType.TORNADO,
                    )
                )

    # ------------------------------------------------------------------ motion

    def move(self, client: Client, packet: Move) -> int:
        """Store a player's movement and forward it; return how many got it."""
        client.x, client.y, client.z = packet.x, packet.y, packet.z
        client.yaw = packet.yaw
        client.vx, client.vy, client.vz = packet.vx, packet.vy, packet.vz
        client.direction = packet.direction
        update = Move(
            type=_SC.MOVE,
            session_id=client.session_id,
            x=client.x,
            y=client.y,
            z=client.z,
            vx=client.vx,
            vy=client.vy,
            vz=client.vz,
            yaw=client.yaw,
            direction=client.direction,
        )
        return self._broadcast(update, exclude=client.session_id)

    def npc_move(self, client: Client, packet: Move) -> int:
        """Relay tornado movement once the game runs; before that just store it.

        Returns how many players the movement was sent to.
        """
        if self.world.game_started:
            relay = replace(packet, type=_SC.NPC_MOVE)
            sent = 0
            for other in list(self.world.in_game()):
                if other.session_id == client.session_id:
                    continue
                if other.player_state == PlayerState.TORNADO:
                    continue
                other.send(relay)
                sent += 1
            return sent
        sid = packet.session_id
        if not 0 <= sid < len(self.world.clients):
            raise IndexError(f"npc id {sid} out of range")
        npc = self.world.clients[sid]
        npc.session_id = sid
        npc.x, npc.y, npc.z = packet.x, packet.y, packet.z
        npc.vx, npc.vy, npc.vz = packet.vx, packet.vy, packet.vz
        return 0

    # ------------------------------------------------------------------ combat

    def attack(self, client: Client, packet: Attack, gun: bool) -> int:
        """Echo a melee or gun attack to every player; return how many got it."""
        code = _SC.GUNATTACK if gun else _SC.ATTACK
        log.info("player %d attacks with %d", client.session_id, packet.bullet)
        return self._broadcast(replace(packet, type=code))

    def damage(self, client: Client, packet: Damage) -> bool:
        """Apply a snowball hit; return False if the target is already a snowman."""
        if client.is_snowman:
            return False
        log.info("player %d was hit", client.session_id)
        self._lose_hp(client)
        if client.hp > Client.MIN_HP:
            return True

        client.turn_into_snowman()
        notice = StatusChange(
            type=_SC.STATUS_CHANGE,
            session_id=client.session_id,
            state=PlayerState.SNOWMAN,
        )
        causes = {
            BulletType.SNOWBALL: CauseOfDeath.SNOWBALL,
            BulletType.SNOWBOMB: CauseOfDeath.SNOWBALL_BOMB,
        }
        cause = causes.get(packet.bullet)
        for other in list(self.world.in_game()):
            other.send(notice)
            if cause is not None:
                other.send(
                    KillLog(
                        attacker=packet.attacker,
                        victim=client.session_id,
                        cause=cause,
                    )
                )
        log.info("player %d turned player %d into a snowman", packet.attacker, client.session_id)
        self.check_game_end(client.session_id, True)
        return True

    def check_game_end(self, victim_id: int, exclude_victim: bool) -> int | None:
        """End the game if one bear is left, otherwise send the new head counts.

        Returns the winner's id, or None while the game goes on.
        """
        survivors = self._survivors(victim_id, exclude_victim)
        if len(survivors) == 1:
            self._end_game(survivors[0])
            return survivors[0]
        self._send_player_counts()
        return None

    # ---------------------------------------------------------------- warmth

    def bonfire_heal(self, client_id: int) -> bool:
        """Schedule the next bonfire heal tick; return True if one was queued."""
        client = self.world.clients[client_id]
        if client.is_snowman or client.hp >= Client.MAX_HP:
            return False
        self.timers.schedule(client_id, client_id, EventType.BONFIRE, HEAL_DELAY)
        return True

    def use_match(self, client: Client) -> bool:
        """Burn a match for warmth; return True if one was used."""
        if client.is_snowman or client.matches <= 0:
            return False
        client.matches -= 1
        client.hp = min(client.hp + MATCH_HEAL, Client.MAX_HP)
        self._send_hp(client)
        return True

    def cold_damage(self, client_id: int) -> bool:
        """Schedule the next cold damage tick; return True if one was queued."""
        client = self.world.clients[client_id]
        if client.is_snowman or client.hp <= Client.MIN_HP:
            return False
        self.timers.schedule(client_id, client_id, EventType.BONE_OUT, COLD_DELAY)
        return True

    # ----------------------------------------------------------------- cheats

    def cheat(self, client: Client, packet: Cheat) -> bool:
        """Apply a developer cheat; return False if it had no effect."""
        kind = packet.cheat_type
        log.info("player %d uses cheat %d", client.session_id, kind)

        if kind == CheatType.HP_UP:
            client.hp = min(client.hp + CHEAT_HP_STEP, Client.MAX_HP)
            self._send_hp(client)
            return True

        if kind == CheatType.HP_DOWN:
            if client.is_snowman:
                return False
            self._lose_hp(client)
            if client.hp <= Client.MIN_HP:
                client.snowballs = 0
                client.iceballs = 0
                client.matches = 0
                client.max_snowballs = Client.ORIGIN_MAX_SNOWBALLS
                client.max_matches = Client.ORIGIN_MAX_MATCHES
                client.has_bag = False
                client.has_umbrella = False
                client.is_snowman = True
                self._broadcast(
                    StatusChange(
                        type=_SC.STATUS_CHANGE,
                        session_id=client.session_id,
                        state=PlayerState.SNOWMAN,
                    )
                )
                survivors = self._survivors(client.session_id, True)
                if len(survivors) == 1:
                    self._end_game(survivors[0])
            return True

        if kind in (CheatType.SNOW_PLUS, CheatType.ICE_PLUS):
            if kind == CheatType.SNOW_PLUS:
                client.snowballs = self._add_up_to(
                    client.snowballs, CHEAT_BALL_STEP, client.max_snowballs
                )
                item, count = ItemType.SNOW, client.snowballs
            else:
                client.iceballs = self._add_up_to(
                    client.iceballs, CHEAT_BALL_STEP, client.max_iceballs
                )
                item, count = ItemType.ICE, client.iceballs
            self._broadcast(
                GetItem(
                    type=_SC.GET_ITEM,
                    session_id=client.session_id,
                    item_type=item,
                    current_bullet=count,
                    destroy_obj_id=-1,
                )
            )
            return True

        return False

    # ------------------------------------------------------------- game flow

    def ready(self, client: Client) -> bool:
        """Mark a player ready; start the game once everyone is. True on start."""
        client.ready = True
        self._broadcast(ReadyNotice(session_id=client.session_id), exclude=client.session_id)
        log.info("player %d is ready", client.session_id)
        for other in self.world.in_game():
            if other.session_id != client.session_id and not other.ready:
                return False
        self._broadcast(StartGame())
        self._send_player_counts()
        if self.on_game_start is not None:
            self.on_game_start()
        self.world.game_started = True
        log.info("game started")
        return True

    def set_status(self, client: Client, packet: StatusChange) -> bool:
        """Apply a status report: bonfire enter/leave, snowman or animal."""
        state = packet.state
        if state == PlayerState.IN_BURN:
            if client.is_snowman:
                return False
            client.is_bone = True
            client.is_active = True
            self.bonfire_heal(client.session_id)
            return True

        if state == PlayerState.OUT_BURN:
            if client.is_snowman:
                return False
            client.is_bone = False
            client.is_active = True
            self.cold_damage(client.session_id)
            return True

        if state == PlayerState.SNOWMAN:
            target = self.world.clients[packet.session_id]
            if not target.is_snowman:
                target.turn_into_snowman()
                for other in list(self.world.in_game()):
                    other.send(
                        StatusChange(
                            type=_SC.STATUS_CHANGE,
                            session_id=target.session_id,
                            state=PlayerState.SNOWMAN,
                        )
                    )
                    other.send(
                        KillLog(
                            attacker=client.session_id,
                            victim=target.session_id,
                            cause=CauseOfDeath.SNOWMAN,
                        )
                    )
                self.check_game_end(target.session_id, False)
            return True

        if state == PlayerState.ANIMAL:
            target = self.world.clients[packet.session_id]
            if target.is_snowman:
                target.hp = Client.BEGIN_SLOW_HP
                target.is_snowman = False
                self._broadcast(
                    StatusChange(
                        type=_SC.STATUS_CHANGE,
                        session_id=target.session_id,
                        state=PlayerState.ANIMAL,
                    )
                )
            return True

        return True

    def put_supply_box(self):
        """Schedule the next supply drop."""
        log.info("supply box scheduled")
        return self.timers.schedule(GM_ID, GM_ID, EventType.SUPPLY_DROP, SUPPLY_DROP_DELAY)

    def restart(self):
        """Schedule the server to recycle after a finished game."""
        log.info("recycle scheduled")
        return self.timers.schedule(GM_ID, GM_ID, EventType.GAME_OVER, GAME_OVER_DELAY)