"""FastAPI dependencies shared by the routers."""

from typing import Callable, Optional

from fastapi import Depends, Request

from salon.auth import Principal, authorize
from salon.container import Container


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_principal(
    request: Request, container: Container = Depends(get_container)
) -> Optional[Principal]:
    return container.authenticator.authenticate(request.headers.get("Authorization"))


def require(operation: str) -> Callable[..., Principal]:
    """Dependency that authorizes ``operation`` before the endpoint runs."""

    def dependency(principal: Optional[Principal] = Depends(get_principal)) -> Principal:
        return authorize(principal, operation)

    dependency.__name__ = f"require_{operation}"
    return dependency


def pagination(total: int, page: int, limit: int) -> dict:
    total_pages = (total + limit - 1) // limit if limit else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_items": total,
        "has_next": page * limit < total,
        "has_prev": page > 1,
    }
