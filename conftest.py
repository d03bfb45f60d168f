#!/usr/bin/env python3
# Copyright (C) 2025 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

# This file initializes the pytest environment

from collections.abc import Iterator

import pytest

from docker_tcp_counter.log import logger

PROC_NET_TCP_HEADER = (
    "  sl  local_address rem_address   st tx_queue rx_queue tr tm->when retrnsmt"
    "   uid  timeout inode"
)

PROC_NET_TCP_LINES = [
    # 0.0.0.0:3333 LISTEN
    "   0: 00000000:0D05 00000000:0000 0A 00000000:00000000 00:00000000 00000000"
    "     0        0 23456 1 0000000000000000 100 0 0 10 0",
    # 192.168.0.2:3333 -> 192.168.0.3:50000 ESTABLISHED
    "   1: 0200A8C0:0D05 0300A8C0:C350 01 00000000:00000000 02:000A7214 00000000"
    "     0        0 34567 2 0000000000000000 20 4 30 10 -1",
    # 127.0.0.1:8080 -> 127.0.0.1:41234 TIME_WAIT
    "   2: 0100007F:1F90 0100007F:A112 06 00000000:00000000 03:00001387 00000000"
    "     0        0 0 3 0000000000000000",
]


@pytest.fixture(autouse=True)
def fixture_reset_logger() -> Iterator[None]:
    """Don't let handlers configured by main() leak into other tests"""
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)


@pytest.fixture(name="proc_net_tcp_output")
def fixture_proc_net_tcp_output() -> bytes:
    return ("\n".join([PROC_NET_TCP_HEADER, *PROC_NET_TCP_LINES]) + "\n").encode("utf-8")
