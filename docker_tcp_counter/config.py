#!/usr/bin/env python3
# Copyright (C) 2025 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""Configuration of the counter

The counter is configured using an ini-style configuration file, i.e. a
file with lines of the form 'key: value', in a section named
[DOCKER_TCP_COUNTER], or [DEFAULT] if the file has no other sections:

    [DOCKER_TCP_COUNTER]
    base_url: unix://var/run/docker.sock
    container_id: long
    max_workers: 4

Missing files and missing keys fall back to the defaults below.
"""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from pathlib import Path

from docker_tcp_counter.log import logger

LOGGER = logger.getChild("config")

CFG_SECTION_NAME = "DOCKER_TCP_COUNTER"

DEFAULT_CFG_FILE = Path(os.getenv("MK_CONFDIR", "")) / "docker_tcp_counter.cfg"

DEFAULT_CFG_SECTION = {
    "base_url": "unix://var/run/docker.sock",
    "timeout": "60",
    "container_id": "short",
    "include_stopped": "yes",
    "max_workers": "8",
    "otlp_endpoint": "http://localhost:4318/v1/metrics",
    "export_interval": "2",
    "poll_interval": "300",
}

CONTAINER_ID_FORMATS = ("short", "long")


@dataclass(frozen=True)
class Config:
    base_url: str = DEFAULT_CFG_SECTION["base_url"]
    timeout: int = 60
    container_id: str = "short"
    include_stopped: bool = True
    max_workers: int = 8
    otlp_endpoint: str = DEFAULT_CFG_SECTION["otlp_endpoint"]
    export_interval: float = 2.0
    poll_interval: float = 300.0


def _positive(key: str, value: float) -> float:
    if value <= 0:
        raise ValueError(f"{key}: must be greater than 0, got {value}")
    return value


def _read_section(section: configparser.SectionProxy) -> Config:
    try:
        timeout = section.getint("timeout")
        max_workers = section.getint("max_workers")
        include_stopped = section.getboolean("include_stopped")
        export_interval = section.getfloat("export_interval")
        poll_interval = section.getfloat("poll_interval")
    except ValueError as exc:
        raise ValueError(f"invalid configuration: {exc}") from exc

    container_id = section["container_id"].strip()
    if container_id not in CONTAINER_ID_FORMATS:
        raise ValueError(
            "container_id: expected one of %s, got %r" % (", ".join(CONTAINER_ID_FORMATS), container_id)
        )

    return Config(
        base_url=section["base_url"].strip(),
        timeout=int(_positive("timeout", timeout)),
        container_id=container_id,
        include_stopped=include_stopped,
        max_workers=int(_positive("max_workers", max_workers)),
        otlp_endpoint=section["otlp_endpoint"].strip(),
        export_interval=_positive("export_interval", export_interval),
        poll_interval=_positive("poll_interval", poll_interval),
    )


def get_config(cfg_file: Path | str = DEFAULT_CFG_FILE) -> Config:
    config = configparser.ConfigParser(DEFAULT_CFG_SECTION)
    LOGGER.debug("trying to read %r", str(cfg_file))
    files_read = config.read(cfg_file)
    LOGGER.info("read configuration file(s): %r", files_read)
    if not config.sections():
        return _read_section(config["DEFAULT"])
    if not config.has_section(CFG_SECTION_NAME):
        raise ValueError(
            "invalid configuration: expected section [%s], got %s"
            % (CFG_SECTION_NAME, ", ".join("[%s]" % s for s in config.sections()))
        )
    return _read_section(config[CFG_SECTION_NAME])
