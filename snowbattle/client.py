"""Tornado driver client: logs in as the tornado and streams NPC movement."""

from __future__ import annotations

import logging
import socket
import threading
from typing import Sequence

from .framing import PacketAssembler
from .manager import TORNADO_LOGIN
from .protocol import (
    BUF_SIZE,
    MAX_USER,
    SERVER_PORT,
    LoginOk,
    LoginRequest,
    Move,
    PacketType,
)

log = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PASSWORD = ""
RECV_POLL = 0.05

_CS = PacketType.CS
_SC = PacketType.SC


class TornadoClient:
    """Connection to a battle server that plays the tornado NPCs."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = SERVER_PORT,
        *,
        name: str = TORNADO_LOGIN,
        password: str = DEFAULT_PASSWORD,
        sock: socket.socket | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.name = name
        self.password = password
        self._sock = sock
        self._assembler = PacketAssembler()
        self._stop = threading.Event()
        self._send_lock = threading.Lock()
        self.session_id = -1
        self.login_ok = False
        self.start_ok = False

    # ------------------------------------------------------------ connection

    def connect(self) -> None:
        """Open the TCP connection to the server; raises OSError on failure."""
        self._sock = socket.create_connection((self.host, self.port))
        log.info("connected to %s:%d", self.host, self.port)

    def close(self) -> None:
        """Close the connection if it is open."""
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self) -> "TornadoClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _send(self, data: bytes) -> None:
        if self._sock is None:
            raise ConnectionError("not connected")
        with self._send_lock:
            self._sock.sendall(data)

    # --------------------------------------------------------------- packets

    def process_packet(self, data: bytes) -> int:
        """Apply one server packet and return its type code."""
        if len(data) < 2:
            raise ValueError("packet shorter than its header")
        kind = data[1]
        if kind == _SC.LOGIN_OK:
            packet = LoginOk.unpack(data)
            self.session_id = packet.session_id
            self.login_ok = True
            log.info("logged in as session %d", self.session_id)
        elif kind == _SC.START:
            self.start_ok = True
            log.info("game started")
        return kind

    def feed(self, data: bytes) -> list[int]:
        """Add received bytes; process and return the types of completed packets."""
        return [self.process_packet(packet) for packet in self._assembler.feed(data)]

    def login_packet(self) -> bytes:
        """Encoded login request for this client."""
        return LoginRequest(
            type=_CS.LOGIN, name=self.name, password=self.password, z=0.0
        ).pack()

    def move_packet(
        self, index: int, location: Sequence[float], velocity: Sequence[float]
    ) -> bytes:
        """Encoded movement of the tornado NPC number ``index``."""
        x, y, z = location
        vx, vy, vz = velocity
        return Move(
            type=_CS.NPC_MOVE,
            session_id=index + MAX_USER,
            x=x,
            y=y,
            z=z,
            vx=vx,
            vy=vy,
            vz=vz,
            yaw=0.0,
            direction=0.0,
        ).pack()

    def send_login(self) -> bytes:
        """Send the login request and return what was sent."""
        data = self.login_packet()
        self._send(data)
        return data

    def send_move(
        self, index: int, location: Sequence[float], velocity: Sequence[float]
    ) -> bool:
        """Send NPC movement once logged in; return True if it was sent."""
        if not self.login_ok:
            return False
        self._send(self.move_packet(index, location, velocity))
        return True

    # ------------------------------------------------------------- main loop

    def run(self) -> None:
        """Log in and process server packets until stopped or the server closes."""
        if self._sock is None:
            raise ConnectionError("not connected")
        self._sock.settimeout(RECV_POLL)
        self.send_login()
        while not self._stop.is_set():
            try:
                data = self._sock.recv(BUF_SIZE)
            except socket.timeout:
                continue
            if not data:
                log.info("server closed the connection")
                break
            self.feed(data)
        self._stop.clear()

    def stop(self) -> None:
        """Ask a running ``run`` loop to finish."""
        self._stop.set()