# contract_lifecycle/models/types.py
from sqlalchemy.types import TypeDecorator
from sqlalchemy import JSON


class JSONBCompat(TypeDecorator):
    """
    JSONB on PostgreSQL, plain JSON on SQLite and others, so the registry
    models run unchanged against ``sqlite://`` in tests.

    Tuples (constructor and method parameters often arrive as tuples) are
    stored as lists, and bytes as 0x-prefixed hex, so values read back
    compare equal to what the driver accepts.
    """
    impl = JSON
    cache_ok = True

    def __init__(self, **jsonb_kwargs):
        super().__init__()
        self._jsonb_kwargs = jsonb_kwargs

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import JSONB
            return dialect.type_descriptor(JSONB(**self._jsonb_kwargs))
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value, dialect):
        return _jsonable(value)


def _jsonable(value):
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    return value
