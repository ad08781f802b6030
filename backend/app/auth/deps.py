"""FastAPI dependencies identifying who performed an action.

HempTrack terminals authenticate upstream (PIN login on the device); the
API only needs the acting user's id for the audit trail, passed in the
X-Actor-Id header.  It is not verified here.

Dependencies:
  get_actor_id       → actor id for mutating endpoints (401 if missing)
  get_optional_actor → actor id or None for read endpoints
"""

from fastapi import Header, HTTPException, status

ACTOR_HEADER = "X-Actor-Id"


async def get_optional_actor(
    x_actor_id: str | None = Header(None, alias=ACTOR_HEADER),
) -> str | None:
    if x_actor_id is None:
        return None
    return x_actor_id.strip() or None


async def get_actor_id(
    x_actor_id: str | None = Header(None, alias=ACTOR_HEADER),
) -> str:
    actor_id = await get_optional_actor(x_actor_id)
    if not actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {ACTOR_HEADER} header",
        )
    return actor_id
