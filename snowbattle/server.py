"""Battle server: accepts players over TCP, routes their packets and runs the game clock."""

from __future__ import annotations

import argparse
import asyncio
import logging
import random

from .framing import PacketAssembler
from .manager import PacketManager
from .protocol import (
    BUF_SIZE,
    SERVER_PORT,
    CauseOfDeath,
    Command,
    ConnectionState,
    EventType,
    HpChange,
    IsBone,
    KillLog,
    Logout,
    ObjectType,
    PacketType,
    PlayerState,
    PutObject,
    StatusChange,
)
from .timers import GM_ID, TimerEvent, TimerQueue
from .world import Client, GameWorld, WorldFullError

log = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
HEAL_STEP = 10
COLD_STEP = 1
COLD_ATTACKER = -2
SUPPLY_SPREAD = 2**31 - 1
SUPPLY_OFFSET = 10000.0
SUPPLY_DROP_HEIGHT = 4500.0
TIMER_TICK = 0.01

_SC = PacketType.SC


class BattleServer:
    """Runs one battle: player connections, packet handling and timed events."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = SERVER_PORT,
        *,
        world: GameWorld | None = None,
        timers: TimerQueue | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.world = world if world is not None else GameWorld()
        self.timers = timers if timers is not None else TimerQueue()
        self.rng = rng if rng is not None else random.Random()
        self.manager = PacketManager(
            self.world,
            self.timers,
            rng=self.rng,
            on_game_start=self._game_started,
            on_game_end=self._game_ended,
        )
        self._writers: dict[int, asyncio.StreamWriter] = {}
        self._server: asyncio.AbstractServer | None = None
        self._timer_task: asyncio.Task | None = None
        self._start_requested = False
        self._timer_reset = False

    # ------------------------------------------------------------- callbacks

    def _game_started(self) -> None:
        self._start_requested = True

    def _game_ended(self, winner: int) -> None:
        log.info("game ended, winner %d; recycling scheduled", winner)
        self.manager.restart()

    # ------------------------------------------------------------- lifecycle

    async def start(self) -> asyncio.AbstractServer:
        """Open the listening socket and start the timer loop."""
        if self.port == 0:
            raise ValueError("a listening port is required")
        self._server = await asyncio.start_server(
            self.handle_connection, self.host, self.port
        )
        self._timer_task = asyncio.create_task(self.run_timers())
        log.info("listening on %s:%d", self.host, self.port)
        return self._server

    async def stop(self) -> None:
        """Stop accepting, stop the timer loop and drop every connection."""
        if self._timer_task is not None:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        for writer in list(self._writers.values()):
            writer.close()
        self._writers.clear()

    async def serve_forever(self) -> None:
        """Start the server and serve until cancelled."""
        server = await self.start()
        try:
            async with server:
                await server.serve_forever()
        finally:
            await self.stop()

    # ----------------------------------------------------------- connections

    async def handle_connection(self, reader, writer) -> None:
        """Serve one player connection until it closes."""
        try:
            client_id = self.world.allocate_id()
        except WorldFullError:
            log.warning("user over, refusing connection")
            writer.close()
            return
        client = self.world.clients[client_id]
        client.session_id = client_id
        client.transport = writer.write
        self._writers[client_id] = writer
        log.info("player %d accepted", client_id)

        assembler = PacketAssembler()
        try:
            while True:
                data = await reader.read(BUF_SIZE)
                if not data:
                    log.info("player %d closed the connection", client_id)
                    break
                try:
                    packets = assembler.feed(data)
                except ValueError as exc:
                    log.warning("player %d sent a broken stream: %s", client_id, exc)
                    break
                for packet in packets:
                    try:
                        self.manager.process(client_id, packet)
                    except (ValueError, IndexError) as exc:
                        log.warning("player %d: %s", client_id, exc)
        except ConnectionError as exc:
            log.warning("player %d connection error: %s", client_id, exc)
        finally:
            if self._writers.get(client_id) is writer:
                self.disconnect(client_id)

    def disconnect(self, client_id: int) -> None:
        """Tell the others a player left and free its slot."""
        client = self.world.clients[client_id]
        client.login_id = " "
        for other in list(self.world.in_game()):
            if other.session_id == client_id:
                continue
            other.send(Logout(type=_SC.LOGOUT, session_id=client_id))
        client.connection_state = ConnectionState.FREE
        writer = self._writers.pop(client_id, None)
        if writer is not None:
            writer.close()
        client.transport = None
        client.reset()
        log.info("player %d disconnected", client_id)

    # ---------------------------------------------------------------- events

    def on_event(self, client_id: int, command: Command) -> bool:
        """Apply a timed game event; return False for commands it does not handle."""
        if command == Command.PLAYER_HEAL:
            self._heal_tick(self.world.clients[client_id])
            return True
        if command == Command.PLAYER_DAMAGE:
            self._cold_tick(self.world.clients[client_id])
            return True
        if command == Command.OBJ_SPAWN:
            self._spawn_supply_box()
            return True
        if command == Command.SERVER_RECYCLE:
            self.restart()
            return True
        return False

    def _send_hp(self, client: Client) -> None:
        client.send(HpChange(type=_SC.HP, session_id=client.session_id, hp=client.hp))

    def _heal_tick(self, client: Client) -> None:
        if client.hp + HEAL_STEP <= Client.MAX_HP:
            client.hp += HEAL_STEP
            self.manager.bonfire_heal(client.session_id)
        else:
            client.hp = Client.MAX_HP
        self._send_hp(client)

    def _cold_tick(self, client: Client) -> None:
        if client.is_snowman or client.is_bone:
            return
        if client.hp - COLD_STEP > Client.MIN_HP:
            client.hp -= COLD_STEP
            self.manager.cold_damage(client.session_id)
            self._send_hp(client)
            return
        if client.hp - COLD_STEP != Client.MIN_HP:
            return
        client.turn_into_snowman()
        self._send_hp(client)
        for other in list(self.world.in_game()):
            other.send(
                StatusChange(
                    type=_SC.STATUS_CHANGE,
                    session_id=client.session_id,
                    state=PlayerState.SNOWMAN,
                )
            )
            other.send(
                KillLog(
                    attacker=COLD_ATTACKER,
                    victim=client.session_id,
                    cause=CauseOfDeath.COLD,
                )
            )
        log.info("player %d froze into a snowman", client.session_id)
        self.manager.check_game_end(client.session_id, True)

    def _spawn_supply_box(self) -> None:
        x = self.rng.randint(0, SUPPLY_SPREAD) - SUPPLY_OFFSET
        y = self.rng.randint(0, SUPPLY_SPREAD) - SUPPLY_OFFSET
        box = PutObject(
            type=_SC.PUT_OBJECT,
            object_type=ObjectType.SUPPLY_BOX,
            x=x,
            y=y,
            z=SUPPLY_DROP_HEIGHT,
        )
        for other in list(self.world.in_game()):
            if other.player_state == PlayerState.TORNADO:
                continue
            other.send(box)
        self.manager.put_supply_box()

    # ---------------------------------------------------------------- timers

    def process_timers(self, now: float | None = None) -> list[TimerEvent]:
        """Fire every due timer event; return the ones that took effect."""
        fired: list[TimerEvent] = []
        for order in self.timers.pop_due(now):
            if self._timer_reset:
                break
            if order.this_id == GM_ID:
                if order.event == EventType.SUPPLY_DROP:
                    self.on_event(0, Command.OBJ_SPAWN)
                    fired.append(order)
                elif order.event == EventType.GAME_OVER:
                    self.on_event(0, Command.SERVER_RECYCLE)
                    fired.append(order)
                continue

            sid = order.this_id
            if not self.world.is_player(sid):
                continue
            client = self.world.clients[sid]
            if client.connection_state != ConnectionState.IN_GAME or not client.is_active:
                continue
            if order.event == EventType.BONFIRE:
                if not client.is_bone:
                    continue
                self.on_event(sid, Command.PLAYER_HEAL)
            elif order.event == EventType.BONE_OUT:
                if client.is_bone:
                    continue
                self.on_event(sid, Command.PLAYER_DAMAGE)
            elif order.event == EventType.MATCH:
                self.on_event(sid, Command.PLAYER_HEAL)
            elif order.event == EventType.END_MATCH:
                client.send(IsBone())
            else:
                continue
            fired.append(order)
        return fired

    async def run_timers(self) -> None:
        """Wait for each game to start, then fire its timed events until it is recycled."""
        while True:
            while not self._start_requested:
                await asyncio.sleep(TIMER_TICK)
            self._start_requested = False
            self._timer_reset = False
            self.timers.clear()
            self.manager.put_supply_box()
            while not self._timer_reset:
                self.process_timers()
                await asyncio.sleep(TIMER_TICK)

    def restart(self) -> None:
        """Throw away the finished battle and get ready for the next one."""
        self._timer_reset = True
        self._start_requested = False
        for writer in list(self._writers.values()):
            writer.close()
        self._writers.clear()
        self.world.reset()
        self.timers.clear()
        log.info("server recycled")


def main(argv=None) -> int:
    """Run the battle server on the port given on the command line."""
    parser = argparse.ArgumentParser(description="Run the snowball battle server.")
    parser.add_argument("port", nargs="?", type=int, default=SERVER_PORT)
    parser.add_argument("--host", default=DEFAULT_HOST)
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
    server = BattleServer(args.host, args.port)
    try:
        asyncio.run(server.serve_forever())
    except KeyboardInterrupt:
        pass
    return 0