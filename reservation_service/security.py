import json

from fastapi import Depends, HTTPException, Request, status

USER_SUB_HEADER = "X-User-Sub"
USER_ROLES_HEADER = "X-User-Roles"


def _parse_roles(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        roles = json.loads(raw)
    except ValueError:
        roles = raw.split(",")
    if isinstance(roles, str):
        roles = [roles]
    if not isinstance(roles, list):
        return []
    return [str(r).strip() for r in roles if str(r).strip()]


def get_current_user(request: Request) -> dict:
    """
    Caller identity as forwarded by the API gateway after it verified the token:
    X-User-Sub carries the user id, X-User-Roles a JSON list of roles.
    """
    sub = (request.headers.get(USER_SUB_HEADER) or "").strip()
    if not sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user identity headers",
        )

    roles = _parse_roles(request.headers.get(USER_ROLES_HEADER))

    request.state.user_sub = sub
    request.state.user_roles = roles

    return {"sub": sub, "roles": roles}


GUEST = "guest"
HOST = "host"


def require_roles(*allowed: str):
    """Dependency factory: the caller's identity, provided they hold one of `allowed`."""
    wanted = {r.lower() for r in allowed}

    def dependency(user: dict = Depends(get_current_user)) -> dict:
        roles = {r.lower() for r in user["roles"]}
        if not roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Roles missing in request",
            )
        if roles.isdisjoint(wanted):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access forbidden for this role",
            )
        return user

    return dependency


guest_user = require_roles(GUEST)
host_user = require_roles(HOST)
any_user = require_roles(GUEST, HOST)
