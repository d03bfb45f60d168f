#!/usr/bin/env python3
# Copyright (C) 2025 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

from __future__ import annotations

from collections.abc import Sequence

from pydantic import BaseModel

from docker_tcp_counter.models import FleetReport
from docker_tcp_counter.proc_net_tcp import ConnectionRecord

AGENT_SECTION_NAME = "docker_container_tcp_connections"


class TcpConnection(BaseModel):
    local_addr: str
    local_port: int
    remote_addr: str
    remote_port: int
    state: int
    state_name: str

    @classmethod
    def from_record(cls, record: ConnectionRecord) -> TcpConnection:
        return cls(
            local_addr=str(record.local.address),
            local_port=record.local.port,
            remote_addr=str(record.remote.address),
            remote_port=record.remote.port,
            state=record.state,
            state_name=record.state_name,
        )


class ContainerInfo(BaseModel):
    name: str
    id: str
    connections: Sequence[TcpConnection]


class FleetInfo(BaseModel):
    total_connection_count: int
    failed_container_ids: Sequence[str]
    containers: Sequence[ContainerInfo]


def render_json(report: FleetReport) -> str:
    return FleetInfo(
        total_connection_count=report.total_connection_count,
        failed_container_ids=list(report.failed_container_ids),
        containers=[
            ContainerInfo(
                name=c.container_name,
                id=c.container_id,
                connections=[TcpConnection.from_record(r) for r in c.connections],
            )
            for c in report.containers
        ],
    ).model_dump_json(indent=2)


def render_text(report: FleetReport) -> str:
    lines = []
    for container in report.containers:
        lines.append(
            f"{container.container_name} ({container.container_id}):"
            f" {container.connection_count} connections"
        )
        lines.extend(
            f"  {record.local} -> {record.remote} {record.state_name}"
            for record in container.connections
        )
    lines.append(f"Total: {report.total_connection_count}")
    return "\n".join(lines)


class Section(list):
    """a very basic agent section class"""

    def __init__(self, name: str | None = None, piggytarget: str | None = None) -> None:
        super().__init__()
        if piggytarget is not None:
            self.append("<<<<%s>>>>" % piggytarget)
        if name is not None:
            self.append("<<<%s:sep(124)>>>" % name)

    def render(self) -> str:
        lines = list(self)
        if lines and lines[0].startswith("<<<<"):
            lines.append("<<<<>>>>")
        return "\n".join(lines)


def render_agent_sections(report: FleetReport) -> str:
    """Checkmk agent output, one piggyback host per container"""
    sections = []
    for container in report.containers:
        section = Section(AGENT_SECTION_NAME, piggytarget=container.container_name)
        section.extend(
            "%s|%s|%s" % (record.state_name, record.local, record.remote)
            for record in container.connections
        )
        sections.append(section.render())
    return "\n".join(sections)
