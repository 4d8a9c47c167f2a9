from fastapi import APIRouter, Depends

from studiocrm.routers.deps import get_current_user
from studiocrm.schemas.user import UserOut
from studiocrm.services.tools.guardrails import recommended_mode, scopes_for_role

router = APIRouter(tags=["me"])


@router.get("/me", response_model=UserOut)
def me(user=Depends(get_current_user)):
    return UserOut(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        is_active=user.is_active,
        created_at=user.created_at,
        scopes=scopes_for_role(user.role),
        recommended_mode=recommended_mode(user.role),
    )
