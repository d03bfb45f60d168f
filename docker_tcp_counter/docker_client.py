#!/usr/bin/env python3
# Copyright (C) 2025 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""Access to the containers of the local Docker daemon

The docker library must be installed on the system executing the
counter ("pip install docker").
"""

from __future__ import annotations

import struct
from collections.abc import Iterator

import docker  # type: ignore[import-untyped]
import docker.errors  # type: ignore[import-untyped]
import docker.utils.socket  # type: ignore[import-untyped]

from docker_tcp_counter.config import Config
from docker_tcp_counter.log import logger
from docker_tcp_counter.models import ContainerRef

LOGGER = logger.getChild("docker")

PROC_NET_TCP_COMMAND = ["cat", "/proc/net/tcp"]

STDOUT = 1
STDERR = 2


class ContainerUnreachable(Exception):
    """The command could not be run in the container"""


def iter_socket(sock, descriptor: int = STDOUT) -> Iterator[bytes]:
    """iterator to recv data from container socket

    Docker multiplexes stdout and stderr: every frame starts with an eight
    byte header holding the stream descriptor and the payload length.
    """
    try:
        header = docker.utils.socket.read(sock, 8)
        while header:
            actual_descriptor, length = struct.unpack(">BxxxL", header)
            while length:
                data = docker.utils.socket.read(sock, length)
                if not data:
                    return
                length -= len(data)
                if actual_descriptor == descriptor:
                    yield data
                else:
                    LOGGER.debug("Received data on descriptor %d: %r", actual_descriptor, data)
            header = docker.utils.socket.read(sock, 8)
    finally:
        sock.close()


class DockerExecTransport:
    """Lists containers and reads their connection tables via docker exec"""

    API_VERSION = "auto"

    def __init__(
        self,
        client: docker.DockerClient,
        container_id_format: str = "short",
        include_stopped: bool = True,
    ) -> None:
        self._client = client
        self._container_id_format = container_id_format
        self._include_stopped = include_stopped
        self._containers: dict[str, docker.models.containers.Container] = {}

    @classmethod
    def from_config(cls, config: Config) -> DockerExecTransport:
        client = docker.DockerClient(
            base_url=config.base_url,
            version=cls.API_VERSION,
            timeout=config.timeout,
        )
        return cls(
            client,
            container_id_format=config.container_id,
            include_stopped=config.include_stopped,
        )

    def _container_key(self, container: docker.models.containers.Container) -> str:
        if self._container_id_format == "long":
            return container.attrs["Id"]
        return container.attrs["Id"][:12]

    def list_containers(self) -> list[ContainerRef]:
        """list the containers in the order the daemon reports them"""
        all_containers = self._client.containers.list(all=self._include_stopped)
        self._containers = {self._container_key(c): c for c in all_containers}
        LOGGER.debug("containers: %r", list(self._containers))
        return [
            ContainerRef(key, (c.attrs.get("Name") or "").lstrip("/") or None)
            for key, c in self._containers.items()
        ]

    def _get_container(self, container_id: str) -> docker.models.containers.Container:
        try:
            return self._containers[container_id]
        except KeyError:
            return self._client.containers.get(container_id)

    def fetch(self, container_id: str) -> Iterator[bytes]:
        """start 'cat /proc/net/tcp' in the container and return its stdout

        Raises ContainerUnreachable if the command cannot be started. The
        returned iterator is lazy: reading the output happens while the
        caller consumes it.
        """
        try:
            container = self._get_container(container_id)
            if container.status != "running":
                raise ContainerUnreachable(
                    f"container {container_id} is not running ({container.status})"
                )
            result = container.exec_run(PROC_NET_TCP_COMMAND, socket=True)
        except docker.errors.DockerException as exc:
            raise ContainerUnreachable(f"Failed to exec in container {container_id}: {exc}") from exc

        # it's a tuple since docker 3.0.0
        exit_code, sock = result if isinstance(result, tuple) else (None, result)
        if exit_code not in (0, None):
            raise ContainerUnreachable(
                f"Failed to exec in container {container_id}: exit code {exit_code}"
            )
        return iter_socket(sock, STDOUT)

    def close(self) -> None:
        self._client.close()
