"""Splitting a TCP byte stream into size-prefixed packets."""

from __future__ import annotations


def split_packets(buffer: bytes) -> tuple[list[bytes], bytes]:
    """Cut every complete packet from ``buffer``.

    Each packet's first byte is its total length. Returns the complete
    packets in order and the bytes of a trailing incomplete packet.
    Raises ValueError on a zero length byte, which cannot be framed.
    """
    data = bytes(buffer)
    packets: list[bytes] = []
    start = 0
    while start < len(data):
        size = data[start]
        if size == 0:
            raise ValueError(f"zero-length packet at offset {start}")
        if start + size > len(data):
            break
        packets.append(data[start : start + size])
        start += size
    return packets, data[start:]


class PacketAssembler:
    """Collects received chunks and yields whole packets as they complete."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def feed(self, data: bytes) -> list[bytes]:
        """Add received bytes and return the packets they complete."""
        self._buffer.extend(data)
        try:
            packets, rest = split_packets(self._buffer)
        except ValueError:
            self._buffer.clear()
            raise
        self._buffer = bytearray(rest)
        return packets

    def pending(self) -> bytes:
        """Bytes held back as the start of an unfinished packet."""
        return bytes(self._buffer)