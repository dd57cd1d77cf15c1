"""Message type identifiers shared by the protocol modules."""

from enum import IntEnum


class MessageType(IntEnum):
    """First byte of every message, selecting the subsystem that handles it."""

    TOPOLOGY = 0x10
    CHUNK = 0x11
    SIGNALLING = 0x12
    TMAN = 0x13
    SECURED_DATA_CHUNK = 0x14
    SECURED_DATA_LOGIN = 0x15


class TopoMessage(IntEnum):
    """Second byte of a topology message: the kind of gossip exchange."""

    NCAST_QUERY = 0x01
    NCAST_REPLY = 0x02
    TMAN_QUERY = 0x03
    TMAN_REPLY = 0x04
    CYCLON_QUERY = 0x05
    CYCLON_REPLY = 0x06
    CLOUDCAST_QUERY = 0x07
    CLOUDCAST_REPLY = 0x08
    CLOUDCAST_CLOUD = 0x09