# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush Bridge Service

Local FastAPI application exposing the client operations to the script
runtime running inside the host application.
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from . import __version__
from .client import BundlePushClient
from .errors import BundlePushError, CorruptSettingsError, DownloadFailure, InvalidPackageError
from .models import StatusReport, UpdateState
from .schemas import (
    AppStateRequest,
    ConfigurationResponse,
    DownloadUpdateRequest,
    FailedUpdateResponse,
    FirstRunResponse,
    HealthResponse,
    InstallUpdateRequest,
    RestartAppRequest,
    RestartAppResponse,
)

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    InvalidPackageError: 400,
    DownloadFailure: 502,
    CorruptSettingsError: 500,
}


def create_app(client: BundlePushClient) -> FastAPI:
    """Build the bridge application around an initialized client."""
    app = FastAPI(title="BundlePush Bridge", version=__version__)
    app.state.client = client

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with the bridge error format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "message": exc.detail,
                    "type": "api_error",
                    "code": str(exc.status_code)
                }
            }
        )

    @app.exception_handler(BundlePushError)
    async def bundlepush_exception_handler(request: Request, exc: BundlePushError):
        """Report client errors without hiding their kind."""
        status_code = ERROR_STATUS_CODES.get(type(exc), 500)
        logger.error("%s: %s", type(exc).__name__, exc)
        return JSONResponse(
            status_code=status_code,
            content={
                "error": {
                    "message": str(exc),
                    "type": type(exc).__name__,
                    "code": str(status_code)
                }
            }
        )

    # =========================================================================
    # HEALTH
    # =========================================================================

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(
            status="ok",
            is_running_binary_version=client.session.is_running_binary_version,
            did_update=client.session.did_update,
            version=__version__,
        )

    # =========================================================================
    # QUERIES
    # =========================================================================

    @app.get("/codepush/configuration", response_model=ConfigurationResponse)
    async def get_configuration():
        return ConfigurationResponse(**client.get_configuration())

    @app.get("/codepush/constants")
    async def get_constants():
        return client.get_constants()

    @app.get("/codepush/update-metadata")
    async def get_update_metadata(update_state: int = Query(default=UpdateState.RUNNING.value, alias="updateState")):
        try:
            state = UpdateState(update_state)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown update state: {update_state}")
        package = client.get_update_metadata(state)
        return package.to_dict() if package is not None else None

    @app.get("/codepush/failed-updates/{package_hash}", response_model=FailedUpdateResponse)
    async def is_failed_update(package_hash: str):
        return FailedUpdateResponse(is_failed_update=client.is_failed_update(package_hash))

    @app.get("/codepush/first-run/{package_hash}", response_model=FirstRunResponse)
    async def is_first_run(package_hash: str):
        return FirstRunResponse(is_first_run=client.is_first_run(package_hash))

    # =========================================================================
    # UPDATES
    # =========================================================================

    @app.post("/codepush/download-update")
    async def download_update(request: DownloadUpdateRequest):
        payload_path = Path(request.payload_path)
        if not payload_path.is_file():
            raise HTTPException(status_code=404, detail=f"Payload not found: {payload_path}")
        with open(payload_path, "rb") as payload:
            package = await client.download_update(request.update_package, payload)
        return package.to_dict()

    @app.post("/codepush/install-update")
    async def install_update(request: InstallUpdateRequest):
        client.install_update(
            request.update_package,
            request.install_mode,
            request.minimum_background_duration,
        )
        return {"status": "ok"}

    @app.post("/codepush/notify-application-ready")
    async def notify_application_ready():
        client.confirm_application_ready()
        return {"status": "ok"}

    @app.post("/codepush/restart-app", response_model=RestartAppResponse)
    async def restart_app(request: Optional[RestartAppRequest] = None):
        only_if_pending = request.only_if_update_is_pending if request else False
        return RestartAppResponse(restarted=client.restart_app(only_if_pending))

    @app.post("/codepush/app-state")
    async def app_state_changed(request: AppStateRequest):
        if request.state == "background":
            client.events.notify_background()
        else:
            client.events.notify_foreground()
        return {"status": "ok"}

    # =========================================================================
    # STATUS REPORTS
    # =========================================================================

    @app.get("/codepush/status-report")
    async def get_new_status_report():
        report = client.get_new_status_report()
        return report.to_dict() if report is not None else None

    @app.post("/codepush/status-report/recorded")
    async def record_status_reported(report: StatusReport):
        client.record_status_reported(report)
        return {"status": "ok"}

    @app.post("/codepush/status-report/retry")
    async def save_status_report_for_retry(report: StatusReport):
        client.save_status_report_for_retry(report)
        return {"status": "ok"}

    return app


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    from .client import init_client
    from .config import load_config, setup_logging

    config = load_config()
    setup_logging(config.logging)
    bridge_client = init_client(config)

    uvicorn.run(
        create_app(bridge_client),
        host=config.bridge.host,
        port=config.bridge.port,
        log_level=config.logging.level.lower(),
    )
