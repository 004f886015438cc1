import math

import pytest

from snowbattle.manager import PacketManager
from snowbattle.protocol import (
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
    StartGame,
    StatusChange,
    decode_server_packet,
)
from snowbattle.timers import GM_ID, TimerQueue
from snowbattle.world import Client, GameWorld


@pytest.fixture
def env():
    world = GameWorld()
    timers = TimerQueue(clock=lambda: 0.0)
    starts = []
    ends = []
    manager = PacketManager(
        world,
        timers,
        on_game_start=lambda: starts.append(True),
        on_game_end=ends.append,
    )
    return manager, world, timers, starts, ends


def join(world, *ids):
    for i in ids:
        world.clients[i].connection_state = ConnectionState.IN_GAME
    return [world.clients[i] for i in ids]


def received(client):
    return [decode_server_packet(data) for data in client.outbox]


def test_unhandled_packet_type_raises(env):
    manager = env[0]
    with pytest.raises(ValueError):
        manager.process(0, bytes([2, PacketType.CS.TELEPORT]))


def test_gm_login_puts_player_in_game(env):
    manager, world, *_ = env
    password = "password"
    data = LoginRequest(name="testuser", password=password, z=1.5).pack()
    assert manager.process(0, data) is True
    client = world.clients[0]
    assert client.connection_state == ConnectionState.IN_GAME
    assert client.login_id == "testuser0"
    reply = received(client)[0]
    assert isinstance(reply, LoginOk)
    assert reply.name == "testuser0"
    assert reply.session_id == 0
    assert reply.yaw == pytest.approx(-115.0)


def test_tornado_login_marks_world(env):
    manager, world, *_ = env
    client = world.clients[3]
    assert manager.login(client, LoginRequest(name="Tornado")) is True
    assert world.tornado is True
    assert client.player_state == PlayerState.TORNADO
    assert client.connection_state != ConnectionState.IN_GAME
    assert isinstance(received(client)[0], LoginOk)


def test_duplicate_login_fails(env):
    manager, world, *_ = env
    (other,) = join(world, 1)
    other.login_id = "alice"
    client = world.clients[0]
    assert manager.login(client, LoginRequest(name="alice")) is False
    reply = received(client)[0]
    assert isinstance(reply, LoginFail)
    assert reply.reason == LoginFailReason.OVERLAP_ACCOUNT


def test_set_position_keeps_yaw_in_range(env):
    manager, world, *_ = env
    for sid in range(8):
        client = world.clients[sid]
        manager.set_position(client, f"p{sid}", "password", 2.0)
        assert -180.0 < client.yaw <= 180.0
        assert math.hypot(client.x, client.y) == pytest.approx(600.0)
        assert client.hp == Client.MAX_HP
        assert client.connection_state == ConnectionState.IN_GAME


def test_move_is_forwarded_to_others(env):
    manager, world, *_ = env
    me, other = join(world, 0, 1)
    sent = manager.move(me, Move(x=1.5, y=2.5, z=3.5, yaw=10.0))
    assert sent == 1
    assert me.outbox == []
    update = received(other)[0]
    assert update.type == PacketType.SC.MOVE
    assert update.session_id == 0
    assert (update.x, update.y, update.z) == (1.5, 2.5, 3.5)
    assert me.x == 1.5


def test_npc_move_before_start_stores_position(env):
    manager, world, *_ = env
    me, other = join(world, 0, 1)
    manager.npc_move(me, Move(type=PacketType.CS.NPC_MOVE, session_id=MAX_USER, x=4.0, y=5.0))
    npc = world.clients[MAX_USER]
    assert (npc.x, npc.y) == (4.0, 5.0)
    assert other.outbox == []


def test_npc_move_after_start_skips_tornado_players(env):
    manager, world, *_ = env
    me, viewer, driver = join(world, 0, 1, 2)
    driver.player_state = PlayerState.TORNADO
    world.game_started = True
    sent = manager.npc_move(me, Move(type=PacketType.CS.NPC_MOVE, session_id=MAX_USER))
    assert sent == 1
    assert received(viewer)[0].type == PacketType.SC.NPC_MOVE
    assert driver.outbox == []


def test_npc_move_rejects_bad_id(env):
    manager, world, *_ = env
    (me,) = join(world, 0)
    with pytest.raises(IndexError):
        manager.npc_move(me, Move(session_id=-1))


def test_gun_attack_uses_gun_code(env):
    manager, world, *_ = env
    me, other = join(world, 0, 1)
    assert manager.attack(me, Attack(bullet=1), True) == 2
    assert received(other)[0].type == PacketType.SC.GUNATTACK


def test_damage_at_full_hp_starts_bonfire_heal(env):
    manager, world, timers, *_ = env
    (me,) = join(world, 0)
    assert manager.damage(me, Damage(attacker=1)) is True
    assert Client.MIN_HP < me.hp < Client.MAX_HP
    hp = received(me)[0]
    assert isinstance(hp, HpChange)
    assert hp.hp == me.hp
    event = timers.try_pop()
    assert event.event == EventType.BONFIRE
    assert event.this_id == 0


def test_damage_to_snowman_is_ignored(env):
    manager, world, *_ = env
    (me,) = join(world, 0)
    me.is_snowman = True
    assert manager.damage(me, Damage()) is False
    assert me.outbox == []


def test_damage_turns_into_snowman_and_reports_counts(env):
    manager, world, *_, ends = env
    victim, a, b = join(world, 0, 1, 2)
    victim.hp = Client.MIN_HP + 10
    victim.snowballs = 7
    manager.damage(victim, Damage(attacker=1, bullet=BulletType.SNOWBALL))
    assert victim.is_snowman
    assert victim.snowballs == 0
    assert victim.hp == Client.MIN_HP
    packets = received(a)
    logs = [p for p in packets if isinstance(p, KillLog)]
    assert logs[0].cause == CauseOfDeath.SNOWBALL
    assert logs[0].victim == 0
    counts = [p for p in packets if isinstance(p, PlayerCount)][0]
    assert (counts.bear, counts.snowman) == world.player_counts()
    assert ends == []


def test_damage_ends_game_with_one_bear_left(env):
    manager, world, *_, ends = env
    victim, winner = join(world, 0, 1)
    victim.hp = Client.MIN_HP
    manager.damage(victim, Damage(attacker=1, bullet=BulletType.ICEBALL))
    assert ends == [1]
    for client in (victim, winner):
        packets = received(client)
        assert not any(isinstance(p, KillLog) for p in packets)
        end = [p for p in packets if isinstance(p, GameEnd)][0]
        assert end.session_id == 1


def test_use_match_heals_and_caps(env):
    manager, world, *_ = env
    (me,) = join(world, 0)
    me.hp = Client.MAX_HP - 10
    me.matches = 1
    assert manager.use_match(me) is True
    assert me.hp == Client.MAX_HP
    assert me.matches == 0
    assert manager.use_match(me) is False


def test_cold_damage_scheduling(env):
    manager, world, timers, *_ = env
    (me,) = join(world, 0)
    assert manager.cold_damage(0) is True
    assert timers.try_pop().event == EventType.BONE_OUT
    me.is_snowman = True
    assert manager.cold_damage(0) is False
    assert len(timers) == 0


def test_cheat_snow_plus_broadcasts_item(env):
    manager, world, *_ = env
    me, other = join(world, 0, 1)
    assert manager.cheat(me, Cheat(cheat_type=CheatType.SNOW_PLUS)) is True
    item = received(other)[0]
    assert isinstance(item, GetItem)
    assert item.item_type == ItemType.SNOW
    assert item.destroy_obj_id == -1
    assert item.current_bullet == me.snowballs == 5


def test_cheat_hp_down_partial_reset(env):
    manager, world, *_, ends = env
    me, other = join(world, 0, 1)
    me.hp = Client.MIN_HP
    me.max_iceballs = Client.BAG_MAX_ICEBALLS
    me.max_snowballs = Client.BAG_MAX_SNOWBALLS
    me.has_bag = True
    assert manager.cheat(me, Cheat(cheat_type=CheatType.HP_DOWN)) is True
    assert me.is_snowman
    assert me.max_snowballs == Client.ORIGIN_MAX_SNOWBALLS
    assert me.max_iceballs == Client.BAG_MAX_ICEBALLS
    assert ends == [1]


def test_cheat_hp_up_caps(env):
    manager, world, *_ = env
    (me,) = join(world, 0)
    me.hp = Client.MAX_HP - 1
    manager.cheat(me, Cheat(cheat_type=CheatType.HP_UP))
    assert me.hp == Client.MAX_HP


def test_ready_starts_when_all_ready(env):
    manager, world, _, starts, _ = env
    a, b = join(world, 0, 1)
    assert manager.ready(a) is False
    assert world.game_started is False
    assert manager.process(1, Packet(type=PacketType.CS.READY).pack()) is True
    assert world.game_started is True
    assert starts == [True]
    assert any(isinstance(p, StartGame) for p in received(a))


def test_set_status_bonfire_in_and_out(env):
    manager, world, timers, *_ = env
    (me,) = join(world, 0)
    me.hp = Client.MAX_HP - 50
    manager.set_status(me, StatusChange(state=PlayerState.OUT_BURN))
    assert me.is_bone is False
    assert timers.try_pop().event == EventType.BONE_OUT
    manager.set_status(me, StatusChange(state=PlayerState.IN_BURN))
    assert me.is_bone is True
    assert me.is_active is True
    assert timers.try_pop().event == EventType.BONFIRE


def test_set_status_snowman_and_animal(env):
    manager, world, *_ = env
    reporter, target, third = join(world, 0, 1, 2)
    manager.set_status(reporter, StatusChange(session_id=1, state=PlayerState.SNOWMAN))
    assert target.is_snowman
    logs = [p for p in received(third) if isinstance(p, KillLog)]
    assert logs[0].attacker == 0
    assert logs[0].cause == CauseOfDeath.SNOWMAN
    manager.set_status(reporter, StatusChange(session_id=1, state=PlayerState.ANIMAL))
    assert target.is_snowman is False
    assert target.hp == Client.BEGIN_SLOW_HP
    last = received(third)[-1]
    assert isinstance(last, StatusChange)
    assert last.state == PlayerState.ANIMAL


def test_send_player_info_includes_tornadoes(env):
    manager, world, *_ = env
    me, other = join(world, 0, 1)
    world.tornado = True
    manager.send_player_info(me)
    to_other = received(other)
    assert to_other[0].session_id == 0
    puts = [p for p in received(me) if isinstance(p, PutObject)]
    tornadoes = [p for p in puts if p.object_type == ObjectType.TORNADO]
    assert [p.session_id for p in tornadoes] == [MAX_USER, MAX_USER + 1, MAX_USER + 2]
    assert any(p.object_type == ObjectType.PLAYER and p.session_id == 1 for p in puts)


def test_supply_box_and_restart_timers(env):
    manager, *_ = env
    drop = manager.put_supply_box()
    over = manager.restart()
    assert (drop.this_id, drop.event) == (GM_ID, EventType.SUPPLY_DROP)
    assert drop.start_time == pytest.approx(60.0)
    assert over.event == EventType.GAME_OVER
    assert over.start_time == pytest.approx(30.0)
    assert manager.timers.try_pop() == over