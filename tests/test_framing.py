import pytest

from snowbattle.framing import PacketAssembler, split_packets
from snowbattle.protocol import HpChange, IsBone, LoginRequest, Move


def test_split_complete_packets():
    first = HpChange(session_id=1, hp=300).pack()
    second = IsBone().pack()
    packets, rest = split_packets(first + second)
    assert packets == [first, second]
    assert rest == b""


def test_split_keeps_trailing_partial():
    first = IsBone().pack()
    partial = Move(session_id=2).pack()[:5]
    packets, rest = split_packets(first + partial)
    assert packets == [first]
    assert rest == partial


def test_split_empty_buffer():
    assert split_packets(b"") == ([], b"")


def test_split_zero_size_raises():
    with pytest.raises(ValueError):
        split_packets(b"\x00\x01")


def test_assembler_joins_chunks():
    packet = LoginRequest(name="tornado", z=2.0).pack()
    assembler = PacketAssembler()
    assert assembler.feed(packet[:3]) == []
    assert assembler.pending() == packet[:3]
    assert assembler.feed(packet[3:]) == [packet]
    assert assembler.pending() == b""


def test_assembler_byte_by_byte_stream():
    stream_packets = [Move(session_id=n, x=float(n)).pack() for n in range(3)]
    stream = b"".join(stream_packets)
    assembler = PacketAssembler()
    received = []
    for byte in stream:
        received.extend(assembler.feed(bytes([byte])))
    assert received == stream_packets
    assert assembler.pending() == b""


def test_assembler_chunk_spanning_packets():
    first = HpChange(session_id=1, hp=1).pack()
    second = HpChange(session_id=2, hp=2).pack()
    assembler = PacketAssembler()
    assert assembler.feed(first + second[:4]) == [first]
    assert assembler.pending() == second[:4]
    assert assembler.feed(second[4:]) == [second]


def test_assembler_zero_size_raises_and_resets():
    assembler = PacketAssembler()
    with pytest.raises(ValueError):
        assembler.feed(b"\x00")
    assert assembler.pending() == b""
    packet = IsBone().pack()
    assert assembler.feed(packet) == [packet]