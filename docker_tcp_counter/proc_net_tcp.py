#!/usr/bin/env python3
# Copyright (C) 2025 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""Decoder for the kernel's IPv4 TCP table (/proc/net/tcp)

A data line looks like this (further columns omitted):

   0: 0100007F:1F90 00000000:0000 0A 00000000:00000000 00:00000000 ...

Addresses are written as one 32 bit word in host byte order, which is
little-endian on every platform we run on. The four address bytes are
therefore reversed before they form the dotted quad. Ports and the state
code are plain big-endian hex numbers.
"""

from __future__ import annotations

import enum
import ipaddress
import re
from typing import NamedTuple

HEADER_MARKER = "sl"

_HEX_ADDRESS = re.compile(r"[0-9A-Fa-f]{8}")
_HEX_PORT = re.compile(r"[0-9A-Fa-f]{1,4}")
_HEX_STATE = re.compile(r"[0-9A-Fa-f]{1,2}")


class TokenDecodeError(ValueError):
    """An ADDRESS:PORT token could not be decoded"""


class MalformedToken(TokenDecodeError):
    pass


class MalformedPort(TokenDecodeError):
    pass


class LineParseError(ValueError):
    """A line of the connection table could not be parsed"""


class InvalidLineFormat(LineParseError):
    def __init__(self, field_count: int) -> None:
        super().__init__(f"Invalid line format: expected at least 4 fields, got {field_count}")
        self.field_count = field_count


class InvalidLocalAddress(LineParseError):
    pass


class InvalidRemoteAddress(LineParseError):
    pass


class InvalidState(LineParseError):
    pass


class ConnectionState(enum.Enum):
    ESTABLISHED = 1
    SYN_SENT = 2
    SYN_RECV = 3
    FIN_WAIT1 = 4
    FIN_WAIT2 = 5
    TIME_WAIT = 6
    CLOSE = 7
    CLOSE_WAIT = 8
    LAST_ACK = 9
    LISTEN = 10
    CLOSING = 11
    UNKNOWN = -1

    @classmethod
    def from_code(cls, code: int) -> ConnectionState:
        """Map a kernel state code to a state, codes we don't know are UNKNOWN"""
        try:
            return cls(code)
        except ValueError:
            return cls.UNKNOWN

    @classmethod
    def from_name(cls, name: str) -> ConnectionState:
        try:
            return cls[name.upper()]
        except KeyError:
            raise ValueError(f"Unknown TCP state: {name!r}") from None


def classify_state(code: int) -> ConnectionState:
    return ConnectionState.from_code(code)


class Endpoint(NamedTuple):
    # a str address is the undecoded hex of a row we could not interpret
    address: ipaddress.IPv4Address | str
    port: int

    def __str__(self) -> str:
        return f"{self.address}:{self.port}"


class ConnectionRecord(NamedTuple):
    local: Endpoint
    remote: Endpoint
    state: int

    @property
    def local_port(self) -> int:
        return self.local.port

    @property
    def connection_state(self) -> ConnectionState:
        return ConnectionState.from_code(self.state)

    @property
    def state_name(self) -> str:
        return self.connection_state.name


class Skip(NamedTuple):
    """Returned for lines that intentionally carry no connection"""

    reason: str


SKIP_EMPTY = Skip("empty")
SKIP_HEADER = Skip("header")


def _decode_address(raw: str) -> ipaddress.IPv4Address | str:
    if not _HEX_ADDRESS.fullmatch(raw):
        return raw
    return ipaddress.IPv4Address(bytes(reversed(bytes.fromhex(raw))))


def decode_endpoint(token: str) -> Endpoint:
    """Decode a HEXADDR:HEXPORT token

    >>> decode_endpoint("0100007F:1F90")
    Endpoint(address=IPv4Address('127.0.0.1'), port=8080)
    """
    parts = token.split(":")
    if len(parts) != 2:
        raise MalformedToken(f"expected ADDRESS:PORT, got {token!r}")
    raw_address, raw_port = parts

    if not _HEX_PORT.fullmatch(raw_port):
        raise MalformedPort(f"invalid port {raw_port!r} in {token!r}")

    return Endpoint(_decode_address(raw_address), int(raw_port, 16))


def encode_endpoint(endpoint: Endpoint) -> str:
    if isinstance(endpoint.address, ipaddress.IPv4Address):
        address = bytes(reversed(endpoint.address.packed)).hex().upper()
    else:
        address = endpoint.address
    return f"{address}:{endpoint.port:04X}"


def parse_line(line: str) -> ConnectionRecord | Skip:
    """Parse one line of /proc/net/tcp

    Empty lines and the column header yield a Skip, anything else that
    cannot be parsed raises a LineParseError.
    """
    fields = line.split()
    if not fields:
        return SKIP_EMPTY
    if fields[0] == HEADER_MARKER:
        return SKIP_HEADER
    if len(fields) < 4:
        raise InvalidLineFormat(len(fields))

    local, remote, state = fields[1:4]

    try:
        local_endpoint = decode_endpoint(local)
    except TokenDecodeError as exc:
        raise InvalidLocalAddress(f"Invalid local address {local!r}: {exc}") from exc

    try:
        remote_endpoint = decode_endpoint(remote)
    except TokenDecodeError as exc:
        raise InvalidRemoteAddress(f"Invalid remote address {remote!r}: {exc}") from exc

    if not _HEX_STATE.fullmatch(state):
        raise InvalidState(f"Invalid state {state!r}")

    return ConnectionRecord(local_endpoint, remote_endpoint, int(state, 16))
