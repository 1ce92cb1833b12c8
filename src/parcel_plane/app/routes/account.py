"""Account context endpoints.

  GET  /account/context            workspaces, roles, tiers, capabilities
  POST /account/workspace/switch   select the active workspace
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..account import AccountContextService
from ..security.auth_guard import get_auth_identity
from ..security.token_verify import AuthIdentity


class SwitchWorkspaceRequest(BaseModel):
    workspace_id: str = Field(..., min_length=1)


def create_account_router(accounts: AccountContextService) -> APIRouter:
    router = APIRouter(prefix="/account", tags=["account"])

    @router.get("/context")
    async def get_account_context(identity: AuthIdentity = Depends(get_auth_identity)):
        context = await accounts.resolve(identity)
        return context.to_dict()

    @router.post("/workspace/switch")
    async def switch_workspace(
        body: SwitchWorkspaceRequest,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        context = await accounts.switch_workspace(identity, body.workspace_id)
        return context.to_dict()

    return router
