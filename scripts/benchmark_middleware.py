#!/usr/bin/env python3
"""Benchmark the per-request overhead of the metrics middleware.

The same route is served by an uninstrumented app and by an app wrapped
with ``MetricsMiddleware``; each is hit sequentially and from a thread
pool, and latency percentiles are printed in a table for comparison.

Usage:
    python scripts/benchmark_middleware.py --requests 2000
    python scripts/benchmark_middleware.py --workers 8 --mode parallel
"""

from __future__ import annotations

import argparse
import statistics
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from fastapi.testclient import TestClient

from promwatch.instrumentation import PrometheusInstrumentation


@dataclass
class BenchmarkResult:
    variant: str
    mode: str
    requests: int
    ms_p50: float
    ms_p95: float
    throughput: float


def build_app(instrumented: bool) -> FastAPI:
    app = FastAPI()
    if instrumented:
        metrics = PrometheusInstrumentation.new("test-benchmark")
        metrics.register_at(app, "/metrics")
        metrics.instrument(app)

    @app.get("/", response_class=PlainTextResponse)
    def index():
        return "Hello World"

    return app


def _timed_get(client: TestClient, path: str) -> float:
    start = time.perf_counter()
    client.get(path)
    return (time.perf_counter() - start) * 1000


def run_benchmark(instrumented: bool, mode: str, requests: int, workers: int) -> BenchmarkResult:
    client = TestClient(build_app(instrumented))
    # warm up routing and metric children
    for _ in range(20):
        client.get("/")

    started = time.perf_counter()
    if mode == "parallel":
        with ThreadPoolExecutor(max_workers=workers) as pool:
            samples = list(pool.map(lambda _: _timed_get(client, "/"), range(requests)))
    else:
        samples = [_timed_get(client, "/") for _ in range(requests)]
    elapsed = time.perf_counter() - started

    samples.sort()
    return BenchmarkResult(
        variant="instrumented" if instrumented else "baseline",
        mode=mode,
        requests=requests,
        ms_p50=statistics.median(samples),
        ms_p95=samples[int(len(samples) * 0.95) - 1],
        throughput=requests / elapsed if elapsed else 0.0,
    )


def print_results(results: list[BenchmarkResult]) -> None:
    headers = ["Variant", "Mode", "Requests", "P50 ms", "P95 ms", "Req/s"]
    rows = [
        [
            r.variant,
            r.mode,
            str(r.requests),
            f"{r.ms_p50:.3f}",
            f"{r.ms_p95:.3f}",
            f"{r.throughput:.1f}",
        ]
        for r in results
    ]
    col_widths = [max(len(h), *(len(row[i]) for row in rows)) for i, h in enumerate(headers)]
    header_line = " | ".join(h.ljust(col_widths[i]) for i, h in enumerate(headers))
    separator = "-+-".join("-" * col_widths[i] for i in range(len(headers)))
    print(header_line)
    print(separator)
    for row in rows:
        print(" | ".join(row[i].ljust(col_widths[i]) for i in range(len(headers))))


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Benchmark the metrics middleware overhead.")
    parser.add_argument("--mode", choices=["sequential", "parallel"], action="append", required=False)
    parser.add_argument("--requests", type=int, default=1000, help="Requests per run.")
    parser.add_argument("--workers", type=int, default=4, help="Threads used in parallel mode.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    if not args.mode:
        args.mode = ["sequential", "parallel"]

    results = []
    for mode in args.mode:
        for instrumented in (False, True):
            print(f"Running {mode} benchmark ({'instrumented' if instrumented else 'baseline'})")
            results.append(run_benchmark(instrumented, mode, args.requests, args.workers))
    print_results(results)


if __name__ == "__main__":
    main()
