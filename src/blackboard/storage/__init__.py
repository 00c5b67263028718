"""File-based storage of protocol definitions."""

from blackboard.storage.errors import ProtocolFormatError
from blackboard.storage.protocol_json import (
    dump,
    dumps,
    from_document,
    load,
    load_file,
    loads,
    save_file,
    to_document,
)

__all__ = [
    "ProtocolFormatError",
    "dump",
    "dumps",
    "from_document",
    "load",
    "load_file",
    "loads",
    "save_file",
    "to_document",
]
