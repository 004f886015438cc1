"""Item pickups, throwing and other per-player actions that are echoed to everyone."""

from __future__ import annotations

import logging
import random
from dataclasses import replace

from .protocol import (
    MAX_BULLET_RANGE,
    BulletType,
    CancelSnow,
    Freeze,
    GetItem,
    GunFire,
    ItemType,
    OpenBox,
    Packet,
    PacketType,
    PutObject,
    ThrowSnow,
    Umbrella,
)
from .world import Client, GameWorld

log = logging.getLogger(__name__)

SNOW_PER_DRIFT = 5
GUN_MIN_SNOWBALLS = 4
GUN_SNOWBALL_COST = 5

_SC = PacketType.SC


def _broadcast(world: GameWorld, packet: Packet, exclude: int | None = None) -> int:
    """Send ``packet`` to every in-game client except ``exclude``; return how many got it."""
    sent = 0
    for other in world.in_game():
        if exclude is not None and other.session_id == exclude:
            continue
        other.send(packet)
        sent += 1
    return sent


def _add_up_to(current: int, amount: int, limit: int) -> int:
    return current + amount if limit >= current + amount else limit


def pick_up(world: GameWorld, client: Client, packet: GetItem) -> bool:
    """Handle an item pickup; return True if the pickup was announced to the players."""
    reply = replace(packet, type=_SC.GET_ITEM)
    kind = packet.item_type

    if kind == ItemType.BAG:
        got = world.take_item(packet.destroy_obj_id)
        if not client.has_bag:
            client.max_snowballs = Client.BAG_MAX_SNOWBALLS
            client.max_iceballs = Client.BAG_MAX_ICEBALLS
            client.max_matches = Client.BAG_MAX_MATCHES
            client.has_bag = True
        if got:
            _broadcast(world, reply)
            log.info("player %d picked up a bag", client.session_id)
            return True
        return False

    if kind == ItemType.UMBRELLA:
        got = world.take_item(packet.destroy_obj_id)
        if got and not client.has_umbrella:
            client.has_umbrella = True
            _broadcast(world, reply)
            log.info("player %d picked up an umbrella", client.session_id)
            return True
        return False

    if kind == ItemType.JET_SKI:
        _broadcast(world, reply, exclude=client.session_id)
        log.info("player %d toggled the jet ski", client.session_id)
        return True

    if kind == ItemType.MATCH:
        got = world.take_item(packet.destroy_obj_id)
        if got and client.max_matches > client.matches:
            client.matches += 1
            _broadcast(world, reply)
            log.info("player %d picked up a match", client.session_id)
            return True
        return False

    if kind == ItemType.SNOW:
        if not world.take_snowdrift(packet.destroy_obj_id):
            return False
        client.snowballs = _add_up_to(client.snowballs, SNOW_PER_DRIFT, client.max_snowballs)
        _broadcast(world, replace(reply, current_bullet=client.snowballs))
        log.info("player %d gathered snow", client.session_id)
        return True

    if kind == ItemType.ICE:
        if not world.take_icedrift(packet.destroy_obj_id):
            return False
        client.iceballs = _add_up_to(client.iceballs, SNOW_PER_DRIFT, client.max_iceballs)
        _broadcast(world, replace(reply, current_bullet=client.iceballs))
        log.info("player %d gathered ice, now %d", client.session_id, client.iceballs)
        return True

    if kind == ItemType.SUPPLY_BOX:
        if not world.take_supply_item(packet.destroy_obj_id):
            return False
        client.snowballs = client.max_snowballs
        client.iceballs = client.max_iceballs
        client.matches = client.max_matches
        _broadcast(world, replace(reply, current_bullet=client.max_iceballs))
        log.info("player %d opened a supply drop", client.session_id)
        return True

    return False


def use_umbrella(world: GameWorld, client: Client, packet: Umbrella) -> bool:
    """Open or close the umbrella; return True if it was announced."""
    if client.is_snowman or not client.has_umbrella:
        return False
    log.info(
        "player %d %s the umbrella",
        client.session_id,
        "closes" if packet.end else "opens",
    )
    _broadcast(world, replace(packet, type=_SC.UMB))
    return True


def throw_snow(world: GameWorld, client: Client, packet: ThrowSnow) -> bool:
    """Echo a throw to everyone; return True if a ball was taken from the stock."""
    used = False
    if packet.bullet == BulletType.SNOWBALL and client.snowballs > 0:
        client.snowballs -= 1
        used = True
    elif packet.bullet == BulletType.ICEBALL and client.iceballs > 0:
        client.iceballs -= 1
        used = True
    _broadcast(world, replace(packet, type=_SC.THROW_SNOW))
    return used


def cancel_snow(world: GameWorld, client: Client, packet: CancelSnow) -> int:
    """Echo a cancelled throw to everyone; return how many players got it."""
    return _broadcast(world, replace(packet, type=_SC.CANCEL_SNOW))


def bullet_spread(rng: random.Random | None = None) -> tuple[int, ...]:
    """A random ordering of the shotgun pellet slots."""
    chooser = rng if rng is not None else random
    return tuple(chooser.sample(range(MAX_BULLET_RANGE), MAX_BULLET_RANGE))


def gun_fire(
    world: GameWorld,
    client: Client,
    packet: GunFire,
    rng: random.Random | None = None,
) -> bool:
    """Fire the shotgun; each receiver gets its own pellet spread."""
    if client.snowballs < GUN_MIN_SNOWBALLS:
        return False
    client.snowballs -= GUN_SNOWBALL_COST
    for other in world.in_game():
        other.send(replace(packet, type=_SC.GUNFIRE, spread=bullet_spread(rng)))
    return True


def open_box(world: GameWorld, client: Client, packet: OpenBox) -> bool:
    """Tell the other players a box was opened; snowmen cannot open boxes."""
    if client.is_snowman:
        return False
    _broadcast(world, replace(packet, type=_SC.OPEN_BOX), exclude=client.session_id)
    return True


def put_object(world: GameWorld, client: Client, packet: PutObject) -> bool:
    """Relay an object placement to every player; snowmen cannot place objects."""
    if client.is_snowman:
        return False
    _broadcast(world, replace(packet, type=_SC.PUT_OBJECT))
    return True


def freeze(world: GameWorld, client: Client, packet: Freeze) -> bool:
    """Relay a freeze hit to every player; snowmen cannot freeze."""
    if client.is_snowman:
        return False
    _broadcast(world, replace(packet, type=_SC.FREEZE))
    return True