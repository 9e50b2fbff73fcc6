from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from deploy_engine.core.models import DeploymentPlan, ExecutionReport, ResourceState, RollbackReport


class DefinitionsRequest(BaseModel):
    resources: List[Dict[str, Any]] = Field(default_factory=list)


class PlanStepResponse(BaseModel):
    resource_id: str
    resource_type: str
    action: str
    status: str
    handle: Optional[str] = None
    error: Optional[str] = None


class PlanResponse(BaseModel):
    deployment: str
    steps: List[PlanStepResponse]
    counts: Dict[str, int]

    @staticmethod
    def from_plan(plan: DeploymentPlan) -> "PlanResponse":
        return PlanResponse(
            deployment=plan.deployment,
            steps=[
                PlanStepResponse(
                    resource_id=s.resource_id,
                    resource_type=s.descriptor.resource_type.value,
                    action=s.action.value,
                    status=s.status.value,
                    handle=s.handle,
                    error=s.error,
                )
                for s in plan.steps
            ],
            counts=plan.counts(),
        )


class RollbackEntryResponse(BaseModel):
    resource_id: str
    compensation: str
    status: str
    error: Optional[str] = None


class RollbackResponse(BaseModel):
    deployment: str
    partial: bool
    entries: List[RollbackEntryResponse]

    @staticmethod
    def from_report(report: RollbackReport) -> "RollbackResponse":
        return RollbackResponse(
            deployment=report.deployment,
            partial=report.partial,
            entries=[
                RollbackEntryResponse(
                    resource_id=e.resource_id,
                    compensation=e.compensation,
                    status=e.status.value,
                    error=e.error,
                )
                for e in report.entries
            ],
        )


class ExecutionResponse(BaseModel):
    deployment: str
    success: bool
    summary: str
    applied: List[str]
    plan: PlanResponse
    finished_at: Optional[datetime] = None

    @staticmethod
    def from_report(report: ExecutionReport) -> "ExecutionResponse":
        return ExecutionResponse(
            deployment=report.deployment,
            success=report.success,
            summary=report.summary(),
            applied=[s.resource_id for s in report.applied],
            plan=PlanResponse.from_plan(report.plan),
            finished_at=report.finished_at,
        )


class ResourceStateResponse(BaseModel):
    resource_id: str
    resource_type: str
    handle: Optional[str] = None
    status: str
    properties: Dict[str, Any]
    depends_on: List[str]
    error: Optional[str] = None
    updated_at: datetime

    @staticmethod
    def from_state(state: ResourceState) -> "ResourceStateResponse":
        return ResourceStateResponse(
            resource_id=state.resource_id,
            resource_type=state.resource_type.value,
            handle=state.handle,
            status=state.status.value,
            properties=state.properties,
            depends_on=list(state.depends_on),
            error=state.error,
            updated_at=state.updated_at,
        )


class ErrorResponse(BaseModel):
    category: str
    detail: str
    resource_id: Optional[str] = None
    last_successful_step: Optional[str] = None
    problems: List[str] = Field(default_factory=list)
