import socket
import threading
import time

import pytest

from snowbattle.client import TornadoClient
from snowbattle.protocol import (
    MAX_USER,
    LoginOk,
    PacketType,
    StartGame,
    decode_client_packet,
)


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    yield a, b
    a.close()
    b.close()


def _login_ok(session_id=7):
    return LoginOk(session_id=session_id, color=0, x=0.0, y=0.0, z=0.0, yaw=0.0, name="Tornado").pack()


def test_login_packet_header_and_round_trip():
    client = TornadoClient()
    data = client.login_packet()
    assert data[0] == len(data)
    assert data[1] == PacketType.CS.LOGIN
    decoded = decode_client_packet(data)
    assert decoded.name == "Tornado"


def test_login_packet_wire_size():
    assert len(TornadoClient().login_packet()) == 46


def test_move_packet_offsets_npc_id():
    client = TornadoClient()
    data = client.move_packet(3, (1.5, 2.0, -4.0), (0.5, 0.0, 1.0))
    assert data[1] == PacketType.CS.NPC_MOVE
    decoded = decode_client_packet(data)
    assert decoded.session_id == 3 + MAX_USER
    assert (decoded.x, decoded.y, decoded.z) == (1.5, 2.0, -4.0)
    assert (decoded.vx, decoded.vy, decoded.vz) == (0.5, 0.0, 1.0)


def test_process_login_ok_sets_session():
    client = TornadoClient()
    kind = client.process_packet(_login_ok(7))
    assert kind == PacketType.SC.LOGIN_OK
    assert client.login_ok is True
    assert client.session_id == 7


def test_process_start_sets_flag():
    client = TornadoClient()
    assert client.start_ok is False
    client.process_packet(StartGame().pack())
    assert client.start_ok is True


def test_process_short_packet_raises():
    with pytest.raises(ValueError):
        TornadoClient().process_packet(b"\x01")


def test_feed_split_across_chunks():
    client = TornadoClient()
    data = _login_ok(5) + StartGame().pack()
    assert client.feed(data[:4]) == []
    kinds = client.feed(data[4:])
    assert kinds == [PacketType.SC.LOGIN_OK, PacketType.SC.START]
    assert client.session_id == 5


def test_send_move_requires_login(pair):
    a, b = pair
    client = TornadoClient(sock=a)
    assert client.send_move(0, (0.0, 0.0, 0.0), (0.0, 0.0, 0.0)) is False
    client.login_ok = True
    assert client.send_move(0, (0.0, 0.0, 0.0), (0.0, 0.0, 0.0)) is True
    expected = client.move_packet(0, (0.0, 0.0, 0.0), (0.0, 0.0, 0.0))
    assert b.recv(256) == expected


def test_send_login_writes_packet(pair):
    a, b = pair
    client = TornadoClient(sock=a)
    sent = client.send_login()
    assert b.recv(256) == sent


def test_send_without_connection_raises():
    with pytest.raises(ConnectionError):
        TornadoClient().send_login()


def test_run_logs_in_and_stops(pair):
    a, b = pair
    client = TornadoClient(sock=a)
    thread = threading.Thread(target=client.run)
    thread.start()
    try:
        received = b.recv(256)
        assert received == client.login_packet()
        b.sendall(_login_ok(9))
        deadline = time.monotonic() + 2.0
        while not client.login_ok and time.monotonic() < deadline:
            time.sleep(0.01)
        assert client.session_id == 9
    finally:
        client.stop()
        thread.join(2.0)
    assert not thread.is_alive()


def test_run_ends_when_server_closes(pair):
    a, b = pair
    client = TornadoClient(sock=a)
    thread = threading.Thread(target=client.run)
    thread.start()
    b.recv(256)
    b.close()
    thread.join(2.0)
    assert not thread.is_alive()
    assert client.login_ok is False