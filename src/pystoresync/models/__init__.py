"""Typed models crossing the storage and broadcast boundaries."""

from pystoresync.models.envelope import PersistedEnvelope, decode_envelope, loads_value, parse_envelope

__all__ = [
    "PersistedEnvelope",
    "decode_envelope",
    "loads_value",
    "parse_envelope",
]
