"""
Partially signed Bitcoin transaction (BIP174, version 0) codec.

Only the structure needed to route signatures is interpreted: the unsigned
transaction in the global map (for identity and display) and the partial
signature records of each input. Every key/value record is kept verbatim so
that a decoded PSBT serializes back to the exact same bytes.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
from dataclasses import dataclass, field

PSBT_MAGIC = b"psbt\xff"

PSBT_GLOBAL_UNSIGNED_TX = 0x00
PSBT_IN_PARTIAL_SIG = 0x02


class PsbtDecodeError(Exception):
    """Raised when a payload is not a valid base64 encoded PSBT."""

    pass


def hash256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def read_varint(data: bytes, offset: int) -> tuple[int, int]:
    if offset >= len(data):
        raise PsbtDecodeError("Unexpected end of data while reading varint")
    first = data[offset]
    offset += 1

    if first < 0xFD:
        return first, offset
    width = {0xFD: 2, 0xFE: 4, 0xFF: 8}[first]
    if offset + width > len(data):
        raise PsbtDecodeError("Unexpected end of data while reading varint")
    value = int.from_bytes(data[offset : offset + width], "little")
    # Only the shortest encoding re-serializes to the same bytes
    if value < {0xFD: 0xFD, 0xFE: 0x10000, 0xFF: 0x100000000}[first]:
        raise PsbtDecodeError(f"Non-canonical varint encoding of {value}")
    return value, offset + width


def encode_varint(value: int) -> bytes:
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + value.to_bytes(2, "little")
    if value <= 0xFFFFFFFF:
        return b"\xfe" + value.to_bytes(4, "little")
    return b"\xff" + value.to_bytes(8, "little")


def _read_bytes(data: bytes, offset: int, length: int) -> tuple[bytes, int]:
    end = offset + length
    if end > len(data):
        raise PsbtDecodeError("Unexpected end of data")
    return data[offset:end], end


@dataclass(frozen=True)
class TxIn:
    """Input of the unsigned transaction."""

    txid: str
    vout: int
    sequence: int

    @property
    def outpoint(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass(frozen=True)
class TxOut:
    """Output of the unsigned transaction."""

    value: int
    script_pubkey: bytes


@dataclass(frozen=True)
class UnsignedTransaction:
    version: int
    inputs: tuple[TxIn, ...]
    outputs: tuple[TxOut, ...]
    locktime: int
    raw: bytes

    @property
    def txid(self) -> str:
        return hash256(self.raw)[::-1].hex()

    @property
    def output_value(self) -> int:
        return sum(out.value for out in self.outputs)

    @classmethod
    def deserialize(cls, raw: bytes) -> UnsignedTransaction:
        """
        Parse a transaction in its legacy (non-witness) serialization.

        PSBT requires the global transaction to carry empty scriptSigs and no
        witness data.
        """
        offset = 0
        version_bytes, offset = _read_bytes(raw, offset, 4)

        input_count, offset = read_varint(raw, offset)
        if input_count == 0:
            # A zero input count would be the segwit marker
            raise PsbtDecodeError("Unsigned transaction must not use witness serialization")

        inputs: list[TxIn] = []
        for _ in range(input_count):
            txid_le, offset = _read_bytes(raw, offset, 32)
            vout_bytes, offset = _read_bytes(raw, offset, 4)
            script_len, offset = read_varint(raw, offset)
            if script_len != 0:
                raise PsbtDecodeError("Unsigned transaction input has a non-empty scriptSig")
            sequence_bytes, offset = _read_bytes(raw, offset, 4)
            inputs.append(
                TxIn(
                    txid=txid_le[::-1].hex(),
                    vout=int.from_bytes(vout_bytes, "little"),
                    sequence=int.from_bytes(sequence_bytes, "little"),
                )
            )

        output_count, offset = read_varint(raw, offset)
        outputs: list[TxOut] = []
        for _ in range(output_count):
            value_bytes, offset = _read_bytes(raw, offset, 8)
            script_len, offset = read_varint(raw, offset)
            script, offset = _read_bytes(raw, offset, script_len)
            outputs.append(TxOut(int.from_bytes(value_bytes, "little"), script))

        locktime_bytes, offset = _read_bytes(raw, offset, 4)
        if offset != len(raw):
            raise PsbtDecodeError("Trailing bytes after unsigned transaction")

        return cls(
            version=int.from_bytes(version_bytes, "little"),
            inputs=tuple(inputs),
            outputs=tuple(outputs),
            locktime=int.from_bytes(locktime_bytes, "little"),
            raw=raw,
        )


# A map is an ordered list of (key, value) records, key including its type byte
KeyValueMap = list[tuple[bytes, bytes]]


def _read_map(data: bytes, offset: int) -> tuple[KeyValueMap, int]:
    records: KeyValueMap = []
    seen: set[bytes] = set()
    while True:
        key_len, offset = read_varint(data, offset)
        if key_len == 0:
            return records, offset
        key, offset = _read_bytes(data, offset, key_len)
        if key in seen:
            raise PsbtDecodeError(f"Duplicate key in PSBT map: {key.hex()}")
        seen.add(key)
        value_len, offset = read_varint(data, offset)
        value, offset = _read_bytes(data, offset, value_len)
        records.append((key, value))


def _write_map(records: KeyValueMap) -> bytes:
    out = b""
    for key, value in records:
        out += encode_varint(len(key)) + key + encode_varint(len(value)) + value
    return out + b"\x00"


@dataclass
class Psbt:
    """
    A decoded PSBT.

    Equality compares the serialized bytes, two PSBTs for the same unsigned
    transaction but with different signatures are different values. Use
    `unsigned_txid` to compare transaction identity.
    """

    global_map: KeyValueMap
    input_maps: list[KeyValueMap]
    output_maps: list[KeyValueMap]
    tx: UnsignedTransaction = field(repr=False)

    @classmethod
    def from_bytes(cls, data: bytes) -> Psbt:
        if not data.startswith(PSBT_MAGIC):
            raise PsbtDecodeError("Missing PSBT magic bytes")

        offset = len(PSBT_MAGIC)
        global_map, offset = _read_map(data, offset)

        unsigned_raw = next(
            (value for key, value in global_map if key == bytes([PSBT_GLOBAL_UNSIGNED_TX])),
            None,
        )
        if unsigned_raw is None:
            raise PsbtDecodeError("PSBT has no unsigned transaction")
        tx = UnsignedTransaction.deserialize(unsigned_raw)

        input_maps: list[KeyValueMap] = []
        for _ in tx.inputs:
            records, offset = _read_map(data, offset)
            input_maps.append(records)

        output_maps: list[KeyValueMap] = []
        for _ in tx.outputs:
            records, offset = _read_map(data, offset)
            output_maps.append(records)

        if offset != len(data):
            raise PsbtDecodeError("Trailing bytes after PSBT")

        return cls(global_map=global_map, input_maps=input_maps, output_maps=output_maps, tx=tx)

    @classmethod
    def from_base64(cls, text: str) -> Psbt:
        try:
            data = base64.b64decode(text.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise PsbtDecodeError(f"Invalid base64: {e}") from e
        return cls.from_bytes(data)

    def serialize(self) -> bytes:
        out = PSBT_MAGIC + _write_map(self.global_map)
        for records in self.input_maps:
            out += _write_map(records)
        for records in self.output_maps:
            out += _write_map(records)
        return out

    def to_base64(self) -> str:
        return base64.b64encode(self.serialize()).decode("ascii")

    @property
    def unsigned_txid(self) -> str:
        return self.tx.txid

    def signature_count(self) -> int:
        """Number of partial signatures over all inputs."""
        return sum(
            1
            for records in self.input_maps
            for key, _ in records
            if key and key[0] == PSBT_IN_PARTIAL_SIG
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Psbt):
            return NotImplemented
        return self.serialize() == other.serialize()

    def __hash__(self) -> int:
        return hash(self.serialize())
