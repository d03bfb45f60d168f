#!/usr/bin/env python3
# Copyright (C) 2025 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import NamedTuple

from docker_tcp_counter.proc_net_tcp import ConnectionRecord, ConnectionState


class ContainerRef(NamedTuple):
    id: str
    name: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


@dataclass(frozen=True)
class ContainerReport:
    container_id: str
    container_name: str
    connections: Sequence[ConnectionRecord]

    @property
    def connection_count(self) -> int:
        return len(self.connections)


@dataclass(frozen=True)
class FleetReport:
    containers: Sequence[ContainerReport] = ()
    # containers whose output could not be fetched, in fleet order
    failed_container_ids: Sequence[str] = ()

    @property
    def total_connection_count(self) -> int:
        return sum(c.connection_count for c in self.containers)


@dataclass(frozen=True)
class ConnectionFilter:
    """Match connections by state and/or local port, None matches anything"""

    state: ConnectionState | None = None
    local_port: int | None = None

    def __call__(self, record: ConnectionRecord) -> bool:
        if self.state is not None and record.connection_state is not self.state:
            return False
        if self.local_port is not None and record.local_port != self.local_port:
            return False
        return True

    def __str__(self) -> str:
        state = self.state.name if self.state is not None else "any state"
        port = f"port {self.local_port}" if self.local_port is not None else "any port"
        return f"{state} on {port}"
