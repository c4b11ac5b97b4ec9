from __future__ import annotations

"""OpenAPI exposure helper – mounts /public/openapi.yaml for the share proxy."""

from datetime import datetime, timezone

import yaml
from fastapi import FastAPI, Response, Request

__all__ = ["install_openapi_route"]


def install_openapi_route(app: FastAPI) -> None:  # noqa: D401
    """Attach a YAML OpenAPI exporter at ``/openapi.yaml`` of *app*.

    ``create_app`` installs it on the public sub-app, so the final path is
    /public/openapi.yaml and the document only describes the recipient-facing
    surface. Operator routes never appear in it.
    """

    @app.get("/openapi.yaml", include_in_schema=False)
    async def _openapi_yaml(_: Request) -> Response:  # noqa: D401, WPS430
        spec = app.openapi()
        yaml_str = yaml.safe_dump(spec, sort_keys=False)
        date_comment = f"# generated: {datetime.now(timezone.utc).date().isoformat()}\n"
        return Response(
            content=date_comment + yaml_str,
            media_type="application/x-yaml",
            headers={"Cache-Control": "public, max-age=300"},
        )
