"""Embedding vector payload codec (float32 BLOBs via sqlite-vec)."""

from __future__ import annotations

import struct

import sqlite_vec


def serialize_vector(vector: list[float]) -> bytes:
    """Pack *vector* as a float32 BLOB (native byte order).

    Uses sqlite-vec's serializer so the payload can also be fed to the
    extension's ``vec_*`` SQL functions.
    """
    return sqlite_vec.serialize_float32(list(vector))


def deserialize_vector(blob: bytes | None) -> list[float]:
    """Unpack a float32 BLOB written by serialize_vector().

    Returns an empty list for a missing or malformed payload.
    """
    if not blob or len(blob) % 4:
        return []
    return list(struct.unpack(f"{len(blob) // 4}f", blob))
