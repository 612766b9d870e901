"""Health controller — unauthenticated probe for load balancers."""

from __future__ import annotations

from litestar import Controller, Response, get

from rcon_server.resources.health import HealthResource


class HealthController(Controller):
    """HTTP adapter for health checks."""

    path = "/api"

    @get("/health")
    async def health(
        self, health_resource: HealthResource,
    ) -> Response[dict[str, str | float]]:
        """200 while the database answers, 503 when it does not."""
        report = await health_resource.check()
        status_code = 200 if report["status"] == "ok" else 503
        return Response(content=report, status_code=status_code)
