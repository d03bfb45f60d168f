#!/usr/bin/env python3
# Copyright (C) 2025 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""Poll the connection tables of a fleet of containers

Every container is polled in its own asyncio task. The blocking part of a
poll (starting the command and reading its output) runs in a thread pool,
so a slow or hanging container never holds up its siblings. A failing
container is logged and left out of the report.
"""

from __future__ import annotations

import asyncio
import functools
import threading
import time
from collections.abc import Callable, Iterable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor

from docker_tcp_counter.collector import collect_connections
from docker_tcp_counter.log import logger
from docker_tcp_counter.models import ContainerRef, ContainerReport, FleetReport
from docker_tcp_counter.proc_net_tcp import ConnectionRecord

LOGGER = logger.getChild("aggregator")

Fetch = Callable[[str], Iterable[bytes]]
ConnectionPredicate = Callable[[ConnectionRecord], bool]


def time_it(func):
    """Decorator to time the coroutine"""

    @functools.wraps(func)
    async def wrapped(*args, **kwargs):
        before = time.time()
        try:
            return await func(*args, **kwargs)
        finally:
            LOGGER.info("%r took %ss", func.__name__, time.time() - before)

    return wrapped


class PollCancelled(Exception):
    pass


def _until_cancelled(chunks: Iterable[bytes], cancelled: threading.Event) -> Iterator[bytes]:
    iterator = iter(chunks)
    while not cancelled.is_set():
        try:
            yield next(iterator)
        except StopIteration:
            return
    raise PollCancelled("poll cancelled")


def _fetch_and_collect(
    fetch: Fetch, container_id: str, cancelled: threading.Event
) -> list[ConnectionRecord]:
    chunks = fetch(container_id)
    try:
        return collect_connections(_until_cancelled(chunks, cancelled), container_id=container_id)
    finally:
        # releases the exec socket of an abandoned stream
        close = getattr(chunks, "close", None)
        if close is not None:
            close()


async def _poll_container(
    container: ContainerRef,
    fetch: Fetch,
    executor: ThreadPoolExecutor,
    cancelled: threading.Event,
) -> list[ConnectionRecord] | None:
    LOGGER.info("container id: %s", container.id)
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(
            executor, _fetch_and_collect, fetch, container.id, cancelled
        )
    except Exception as exc:
        LOGGER.warning("Failed to get TCP connections for container %s: %s", container.id, exc)
        return None


def _as_container_ref(container: ContainerRef | tuple[str, str | None]) -> ContainerRef:
    return container if isinstance(container, ContainerRef) else ContainerRef(*container)


@time_it
async def aggregate_async(
    containers: Iterable[ContainerRef | tuple[str, str | None]],
    fetch: Fetch,
    connection_filter: ConnectionPredicate | None = None,
    *,
    max_workers: int | None = None,
) -> FleetReport:
    """Poll all containers and build the fleet report

    The report lists containers in the given order, not in the order their
    polls complete. Cancelling this coroutine stops all polls at their
    next chunk, closes their streams and discards whatever they already
    collected.
    """
    fleet: Sequence[ContainerRef] = [_as_container_ref(c) for c in containers]
    executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="tcp-counter")
    cancelled = threading.Event()
    try:
        async with asyncio.TaskGroup() as task_group:
            # one slot per container, in fleet order
            tasks = [
                task_group.create_task(_poll_container(container, fetch, executor, cancelled))
                for container in fleet
            ]
    finally:
        # polls still running in a worker stop at their next chunk
        cancelled.set()
        executor.shutdown(wait=False, cancel_futures=True)

    reports: list[ContainerReport] = []
    failed: list[str] = []
    for container, task in zip(fleet, tasks):
        connections = task.result()
        if connections is None:
            failed.append(container.id)
            continue

        if connection_filter is not None:
            connections = [c for c in connections if connection_filter(c)]
        if not connections:
            LOGGER.debug("no matching connections in container %s", container.id)
            continue

        reports.append(
            ContainerReport(
                container_id=container.id,
                container_name=container.display_name,
                connections=tuple(connections),
            )
        )

    report = FleetReport(containers=tuple(reports), failed_container_ids=tuple(failed))
    LOGGER.info(
        "%d connections in %d of %d containers (%d failed)",
        report.total_connection_count,
        len(reports),
        len(fleet),
        len(failed),
    )
    return report


def aggregate(
    containers: Iterable[ContainerRef | tuple[str, str | None]],
    fetch: Fetch,
    connection_filter: ConnectionPredicate | None = None,
    *,
    max_workers: int | None = None,
) -> FleetReport:
    return asyncio.run(
        aggregate_async(containers, fetch, connection_filter, max_workers=max_workers)
    )
