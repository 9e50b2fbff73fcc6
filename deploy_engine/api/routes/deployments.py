from typing import List

from fastapi import APIRouter, Depends

from deploy_engine.api.schemas.deployment import (
    DefinitionsRequest,
    ExecutionResponse,
    PlanResponse,
    ResourceStateResponse,
    RollbackResponse,
)
from deploy_engine.container import get_deployment_service

router = APIRouter(prefix="/deployments", tags=["deployments"])


@router.get("/", response_model=List[str])
def list_deployments(service=Depends(get_deployment_service)):
    return service.list_deployments()


@router.post("/{deployment}/plan", response_model=PlanResponse)
def plan_deployment(
    deployment: str,
    request: DefinitionsRequest,
    service=Depends(get_deployment_service),
):
    plan = service.plan(deployment, request.resources)
    return PlanResponse.from_plan(plan)


@router.post("/{deployment}/apply", response_model=ExecutionResponse)
def apply_deployment(
    deployment: str,
    request: DefinitionsRequest,
    service=Depends(get_deployment_service),
):
    report = service.apply(deployment, request.resources)
    return ExecutionResponse.from_report(report)


@router.post("/{deployment}/destroy", response_model=ExecutionResponse)
def destroy_deployment(
    deployment: str,
    service=Depends(get_deployment_service),
):
    report = service.destroy(deployment)
    return ExecutionResponse.from_report(report)


@router.post("/{deployment}/rollback", response_model=RollbackResponse)
def rollback_deployment(
    deployment: str,
    service=Depends(get_deployment_service),
):
    report = service.rollback(deployment)
    return RollbackResponse.from_report(report)


@router.get("/{deployment}/state", response_model=List[ResourceStateResponse])
def get_state(
    deployment: str,
    service=Depends(get_deployment_service),
):
    states = service.show_state(deployment)
    return [ResourceStateResponse.from_state(s) for _, s in sorted(states.items())]
