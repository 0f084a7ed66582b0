from __future__ import annotations

from typing import Callable

from fastapi import Request, Response
from prometheus_client.exposition import choose_encoder

from promwatch.infra.observability.metrics import Gatherer


def build_metrics_endpoint(gatherer: Gatherer) -> Callable[[Request], Response]:
    # 按 Accept 协商 text 或 OpenMetrics 格式
    def metrics(request: Request) -> Response:
        encoder, content_type = choose_encoder(request.headers.get("accept", ""))
        return Response(content=encoder(gatherer), media_type=content_type)

    return metrics
