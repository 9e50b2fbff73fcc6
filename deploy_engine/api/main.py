import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from deploy_engine.api.routes.deployments import router as deployments_router
from deploy_engine.api.schemas.deployment import ErrorResponse
from deploy_engine.core.errors import (
    CycleError,
    DeploymentCancelledError,
    DeploymentError,
    DescriptorValidationError,
    PartialRollbackError,
    ProviderError,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Deployment Engine API")

# category, HTTP status; first match wins
ERROR_STATUS = [
    (DescriptorValidationError, "validation", 422),
    (CycleError, "cycle", 409),
    (PartialRollbackError, "partial_rollback", 500),
    (DeploymentCancelledError, "cancelled", 409),
    (ProviderError, "provider", 502),
    (DeploymentError, "deployment", 500),
]


@app.exception_handler(DeploymentError)
async def deployment_error_handler(request: Request, exc: DeploymentError):
    category, status_code = "deployment", 500
    for error_type, name, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            category, status_code = name, code
            break

    report = getattr(exc, "report", None)
    body = ErrorResponse(
        category=category,
        detail=str(exc),
        resource_id=getattr(exc, "resource_id", None),
        last_successful_step=report.last_successful_resource_id if report else None,
        problems=getattr(exc, "problems", []),
    )
    logger.error(f"[api] {request.method} {request.url.path} -> {status_code}: {exc}")
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(deployments_router)
