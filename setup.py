#!/usr/bin/env python3
# Copyright (C) 2025 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

from setuptools import find_packages, setup

setup(
    name="docker-tcp-counter",
    version="0.1.0",
    description="Count TCP connections inside the containers of a Docker host",
    license="GPL-2.0",
    packages=find_packages(include=["docker_tcp_counter", "docker_tcp_counter.*"]),
    include_package_data=True,
    python_requires=">=3.11",
    install_requires=[
        "docker>=6.0",
        "opentelemetry-api>=1.20",
        "opentelemetry-sdk>=1.20",
        "opentelemetry-exporter-otlp-proto-http>=1.20",
        "pydantic>=2.0",
    ],
    extras_require={"test": ["pytest"]},
    entry_points={
        "console_scripts": ["docker-tcp-counter = docker_tcp_counter.main:main"],
    },
)
