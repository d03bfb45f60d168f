#!/usr/bin/env python3
# Copyright (C) 2025 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""docker-tcp-counter

Count the TCP connections of the containers on this Docker host, either
once for a given port and state or periodically as OpenTelemetry metrics.

Examples: 'docker-tcp-counter' counts established connections on port 3333,
'docker-tcp-counter --json 34333' prints them as JSON, 'docker-tcp-counter
--daemon' exports all connections every poll_interval seconds.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
import sys
from collections.abc import Awaitable, Callable

from docker_tcp_counter import __version__
from docker_tcp_counter.aggregator import aggregate, aggregate_async
from docker_tcp_counter.config import Config, DEFAULT_CFG_FILE, get_config
from docker_tcp_counter.docker_client import DockerExecTransport
from docker_tcp_counter.exporter import MetricsExporter
from docker_tcp_counter.log import configure_logger, logger
from docker_tcp_counter.models import ConnectionFilter, FleetReport
from docker_tcp_counter.proc_net_tcp import ConnectionState
from docker_tcp_counter.report import render_agent_sections, render_json, render_text

LOGGER = logger.getChild("main")

DEFAULT_PORT = 3333

RENDERERS: dict[str, Callable[[FleetReport], str]] = {
    "text": render_text,
    "json": render_json,
    "agent": render_agent_sections,
}


def _port(value: str) -> int:
    port = int(value)
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"invalid port: {value}")
    return port


def _state(value: str) -> ConnectionState | None:
    if value.lower() == "any":
        return None
    try:
        return ConnectionState.from_name(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def parse_arguments(argv: list[str]) -> argparse.Namespace:
    prog, descr, epilog = __doc__.split("\n\n")
    parser = argparse.ArgumentParser(prog=prog, description=descr, epilog=epilog)
    parser.add_argument(
        "--debug", action="store_true", help="""Debug mode: raise Python exceptions"""
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="""Verbose mode (for even more output use -vvv)""",
    )
    parser.add_argument(
        "-V", "--version", action="version", version=f"%(prog)s v{__version__}"
    )
    parser.add_argument(
        "-c",
        "--config-file",
        default=DEFAULT_CFG_FILE,
        help="""Read config file (default: $MK_CONFDIR/docker_tcp_counter.cfg)""",
    )
    output = parser.add_mutually_exclusive_group()
    output.add_argument(
        "-j",
        "--json",
        dest="format",
        action="store_const",
        const="json",
        help="""Output in JSON format""",
    )
    output.add_argument(
        "--format",
        choices=sorted(RENDERERS),
        default=None,
        help="""Output format (default: text)""",
    )
    parser.add_argument(
        "--state",
        type=_state,
        default=ConnectionState.ESTABLISHED,
        help="""TCP state to count, 'any' for all states (default: ESTABLISHED)""",
    )
    parser.add_argument(
        "--daemon",
        action="store_true",
        help="""Export all connections as metrics every poll_interval seconds""",
    )
    parser.add_argument(
        "port",
        metavar="PORT",
        nargs="?",
        type=_port,
        default=DEFAULT_PORT,
        help="""The local port to count, 0 for any port (default: %(default)s)""",
    )

    args = parser.parse_args(argv)
    if args.format is None:
        args.format = "text"
    return args


def run_once(
    transport: DockerExecTransport, config: Config, connection_filter: ConnectionFilter
) -> FleetReport:
    LOGGER.info("counting connections: %s", connection_filter)
    return aggregate(
        transport.list_containers(),
        transport.fetch,
        connection_filter,
        max_workers=config.max_workers,
    )


async def run_daemon(
    poll_cycle: Callable[[], Awaitable[FleetReport]],
    exporter: MetricsExporter,
    poll_interval: float,
    stop: asyncio.Event,
    debug: bool = False,
) -> None:
    """Poll and export until stop is set

    Setting stop during a poll cancels the poll, its results are never
    exported.
    """
    while not stop.is_set():
        cycle = asyncio.ensure_future(poll_cycle())
        stopper = asyncio.ensure_future(stop.wait())
        await asyncio.wait({cycle, stopper}, return_when=asyncio.FIRST_COMPLETED)
        if not cycle.done():
            cycle.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await cycle
            LOGGER.info("cancelled running poll")
            break
        stopper.cancel()

        try:
            report = cycle.result()
        except Exception as exc:
            if debug:
                raise
            LOGGER.error("Error collecting metrics: %s", exc)
        else:
            exporter.record(report)

        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=poll_interval)


async def _daemon_main(transport: DockerExecTransport, config: Config, debug: bool) -> None:
    async def poll_cycle() -> FleetReport:
        containers = await asyncio.to_thread(transport.list_containers)
        return await aggregate_async(containers, transport.fetch, max_workers=config.max_workers)

    exporter = MetricsExporter.from_config(config)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    sys.stdout.write(
        "docker-tcp-counter v%s\n"
        "Starting daemon mode - checking containers every %s seconds\n"
        "Press Ctrl+C to exit\n" % (__version__, config.poll_interval)
    )
    sys.stdout.flush()
    try:
        await run_daemon(poll_cycle, exporter, config.poll_interval, stop, debug=debug)
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)
        sys.stdout.write("Shutting down...\n")
        exporter.shutdown()


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    args = parse_arguments(argv)
    configure_logger(args.verbose)
    LOGGER.debug("parsed args: %r", args)

    try:
        config = get_config(args.config_file)
        transport = DockerExecTransport.from_config(config)
        try:
            if args.daemon:
                asyncio.run(_daemon_main(transport, config, args.debug))
                return 0
            report = run_once(
                transport,
                config,
                ConnectionFilter(state=args.state, local_port=args.port or None),
            )
        finally:
            transport.close()
    except Exception as exc:
        if args.debug:
            raise
        sys.stderr.write("%s\n" % exc)
        return 1

    sys.stdout.write("%s\n" % RENDERERS[args.format](report))
    return 0


if __name__ == "__main__":
    sys.exit(main())
