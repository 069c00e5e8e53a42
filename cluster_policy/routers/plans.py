from fastapi import APIRouter, Depends, Query

from cluster_policy.logging_config import get_logger
from cluster_policy.schemas.environment import Environment, PolicyModel, PolicyOptions
from cluster_policy.schemas.plan import ResourcePlan
from cluster_policy.services.policy_service import PolicyService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["plans"])


def get_policy_service() -> PolicyService:
    return PolicyService()


@router.get("/environments", response_model=list[Environment])
def list_environments(service: PolicyService = Depends(get_policy_service)):
    return service.environments


@router.get("/plans/{environment}", response_model=ResourcePlan)
def get_plan(
    environment: str,
    model: PolicyModel = Query(default=PolicyModel.TIERED),
    allow_legacy_open: bool = Query(default=False),
    service: PolicyService = Depends(get_policy_service),
):
    options = PolicyOptions.from_model(model, allow_legacy_open=allow_legacy_open)
    plan = service.compile_environment(environment, policy=options)
    logger.info("plan_served", environment=environment, fingerprint=plan.fingerprint())
    return plan
