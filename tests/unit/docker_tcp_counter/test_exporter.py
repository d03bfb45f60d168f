#!/usr/bin/env python3
# Copyright (C) 2025 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

from ipaddress import IPv4Address

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from docker_tcp_counter.exporter import MetricsExporter
from docker_tcp_counter.models import ContainerReport, FleetReport
from docker_tcp_counter.proc_net_tcp import ConnectionRecord, Endpoint


def _record(local_port: int, state: int) -> ConnectionRecord:
    return ConnectionRecord(
        Endpoint(IPv4Address("172.17.0.2"), local_port),
        Endpoint(IPv4Address("172.17.0.1"), 50000),
        state,
    )


REPORT = FleetReport(
    containers=(
        ContainerReport(
            container_id="1f2e3d4c5b6a",
            container_name="miner",
            connections=(_record(3333, 1), _record(3333, 1), _record(3333, 10)),
        ),
        ContainerReport(
            container_id="abcdefabcdef",
            container_name="pool",
            connections=(_record(8080, 6),),
        ),
    ),
)


@pytest.fixture(name="metric_reader")
def fixture_metric_reader() -> InMemoryMetricReader:
    return InMemoryMetricReader()


@pytest.fixture(name="exporter")
def fixture_exporter(metric_reader: InMemoryMetricReader) -> MetricsExporter:
    return MetricsExporter(MeterProvider(metric_readers=[metric_reader]))


def _data_points(metric_reader: InMemoryMetricReader) -> dict[str, dict[tuple, int]]:
    points: dict[str, dict[tuple, int]] = {}
    metrics_data = metric_reader.get_metrics_data()
    if metrics_data is None:
        return points
    for resource_metrics in metrics_data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                points[metric.name] = {
                    tuple(sorted(p.attributes.items())): p.value for p in metric.data.data_points
                }
    return points


def test_connection_counts(exporter: MetricsExporter, metric_reader: InMemoryMetricReader) -> None:
    exporter.record(REPORT)

    assert _data_points(metric_reader)["tcp.connections"] == {
        (("container.id", "1f2e3d4c5b6a"), ("container.name", "miner")): 3,
        (("container.id", "abcdefabcdef"), ("container.name", "pool")): 1,
    }


def test_connection_counts_by_state(
    exporter: MetricsExporter, metric_reader: InMemoryMetricReader
) -> None:
    exporter.record(REPORT)

    assert _data_points(metric_reader)["tcp.connections.by_state"] == {
        (
            ("container.id", "1f2e3d4c5b6a"),
            ("container.name", "miner"),
            ("local_port", "3333"),
            ("state", "ESTABLISHED"),
        ): 2,
        (
            ("container.id", "1f2e3d4c5b6a"),
            ("container.name", "miner"),
            ("local_port", "3333"),
            ("state", "LISTEN"),
        ): 1,
        (
            ("container.id", "abcdefabcdef"),
            ("container.name", "pool"),
            ("local_port", "8080"),
            ("state", "TIME_WAIT"),
        ): 1,
    }


def test_counters_accumulate_over_cycles(
    exporter: MetricsExporter, metric_reader: InMemoryMetricReader
) -> None:
    exporter.record(REPORT)
    exporter.record(REPORT)

    points = _data_points(metric_reader)["tcp.connections"]
    assert points[(("container.id", "1f2e3d4c5b6a"), ("container.name", "miner"))] == 6


def test_empty_report_records_nothing(
    exporter: MetricsExporter, metric_reader: InMemoryMetricReader
) -> None:
    exporter.record(FleetReport())
    assert not _data_points(metric_reader)
