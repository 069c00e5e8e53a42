from fastapi import APIRouter, Depends

from cluster_policy.routers.plans import get_policy_service
from cluster_policy.services.policy_service import PolicyService

router = APIRouter(prefix="/api/v1", tags=["health"])


@router.get("/health")
def health_check(service: PolicyService = Depends(get_policy_service)):
    results = service.compile_all()
    failed = {r.environment: r.error for r in results if not r.ok}

    return {
        "status": "ok" if not failed else "degraded",
        "environments": [r.environment for r in results],
        "failed": failed,
    }
