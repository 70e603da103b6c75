"""
Admin-only routes.
Requires X-Admin-Key header for all endpoints.
"""
from fastapi import APIRouter, Depends

from classia.core.admin_auth import AdminActor, require_admin
from classia.features.admin.service import admin_reset_quota, get_usage_stats


router = APIRouter(prefix="/v1/admin", tags=["admin"])


@router.get("/stats")
def usage_stats(actor: AdminActor = Depends(require_admin)):
    return get_usage_stats()


@router.post("/accounts/{account_id}/reset-quota")
def reset_account_quota(account_id: str, actor: AdminActor = Depends(require_admin)):
    account = admin_reset_quota(account_id, actor.actor_id)
    return {"success": True, "account": account.model_dump(mode="json", by_alias=True)}
