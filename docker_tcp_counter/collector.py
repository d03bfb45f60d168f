#!/usr/bin/env python3
# Copyright (C) 2025 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

from __future__ import annotations

import codecs
from collections.abc import Iterable, Iterator

from docker_tcp_counter.log import logger
from docker_tcp_counter.proc_net_tcp import ConnectionRecord, LineParseError, parse_line, Skip

LOGGER = logger.getChild("collector")


def iter_lines(chunks: Iterable[bytes]) -> Iterator[str]:
    """Decode a chunked byte stream into lines

    Lines and multi-byte characters may be split across chunks. Undecodable
    bytes are replaced, never raised.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""
    for chunk in chunks:
        pending += decoder.decode(chunk)
        *complete, pending = pending.split("\n")
        yield from complete
    pending += decoder.decode(b"", final=True)
    if pending:
        yield pending


def collect_connections(
    chunks: Iterable[bytes], container_id: str | None = None
) -> list[ConnectionRecord]:
    """Parse the raw /proc/net/tcp output of one container

    Malformed lines are logged and dropped. Errors raised while reading
    the stream itself are left to the caller.
    """
    where = f" in container {container_id}" if container_id else ""
    connections: list[ConnectionRecord] = []
    for line in iter_lines(chunks):
        try:
            result = parse_line(line)
        except LineParseError as exc:
            LOGGER.warning("Error parsing TCP connection%s: %s", where, exc)
            continue

        if isinstance(result, Skip):
            LOGGER.debug("skipped %s line%s", result.reason, where)
            continue

        LOGGER.debug("Connection%s: %r", where, result)
        connections.append(result)

    return connections
