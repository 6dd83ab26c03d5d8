"""Tests for the float32 vector codec."""

from __future__ import annotations

import pytest

from chatindex.db.vectors import deserialize_vector, serialize_vector


def test_serialize_is_four_bytes_per_dimension():
    assert len(serialize_vector([0.1, 0.2, 0.3])) == 12


def test_round_trip_preserves_values():
    vec = [0.5, -1.25, 3.0, 0.0]
    assert deserialize_vector(serialize_vector(vec)) == pytest.approx(vec)


def test_deserialize_empty_blob():
    assert deserialize_vector(b"") == []
    assert deserialize_vector(None) == []


def test_deserialize_malformed_length():
    assert deserialize_vector(b"\x00\x00\x00") == []
