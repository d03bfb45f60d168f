#!/usr/bin/env python3
# Copyright (C) 2025 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""Export fleet reports as OpenTelemetry metrics

The meter provider is owned by the exporter and never registered as the
global provider.
"""

from __future__ import annotations

from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource

from docker_tcp_counter import __version__
from docker_tcp_counter.config import Config
from docker_tcp_counter.log import logger
from docker_tcp_counter.models import FleetReport

LOGGER = logger.getChild("exporter")

SERVICE_NAME = "docker-tcp-counter"


def create_meter_provider(endpoint: str, export_interval: float) -> MeterProvider:
    LOGGER.info("Setting up OpenTelemetry metrics export to %s", endpoint)
    metric_exporter = OTLPMetricExporter(endpoint=endpoint)
    metrics_reader = PeriodicExportingMetricReader(
        exporter=metric_exporter,
        export_interval_millis=export_interval * 1000,
    )
    return MeterProvider(
        metric_readers=[metrics_reader],
        resource=Resource.create({"service.name": SERVICE_NAME}),
    )


class MetricsExporter:
    def __init__(self, meter_provider: MeterProvider) -> None:
        self._meter_provider = meter_provider
        meter = meter_provider.get_meter(SERVICE_NAME, __version__)
        self._tcp_connections = meter.create_counter(
            name="tcp.connections",
            unit="1",
            description="Number of TCP connections",
        )
        self._tcp_connections_by_state = meter.create_counter(
            name="tcp.connections.by_state",
            unit="1",
            description="Number of TCP connections by state",
        )

    @classmethod
    def from_config(cls, config: Config) -> MetricsExporter:
        return cls(create_meter_provider(config.otlp_endpoint, config.export_interval))

    def record(self, report: FleetReport) -> None:
        for container in report.containers:
            container_attributes = {
                "container.name": container.container_name,
                "container.id": container.container_id,
            }
            self._tcp_connections.add(container.connection_count, container_attributes)
            for connection in container.connections:
                self._tcp_connections_by_state.add(
                    1,
                    {
                        **container_attributes,
                        "state": connection.state_name,
                        "local_port": str(connection.local_port),
                    },
                )
        LOGGER.info("Metrics collected")

    def shutdown(self) -> None:
        LOGGER.info("Shutting down OpenTelemetry meter provider")
        self._meter_provider.shutdown()
