"""Service catalog endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends

from salon.api.deps import get_container, require
from salon.auth import Principal
from salon.container import Container
from salon.errors import NotFoundError, ValidationFailedError
from salon.logging_context import get_request_logger
from salon.schemas.service_schema import Service, ServiceCategory, ServiceUpdate

logger = get_request_logger(__name__)

router = APIRouter(prefix="/api/services", tags=["services"])


@router.get("")
def list_services(
    category: Optional[ServiceCategory] = None, container: Container = Depends(get_container)
):
    services = container.catalog.list(category=category)
    return {"success": True, "services": [s.model_dump(mode="json") for s in services]}


@router.get("/{service_id}")
def get_service(service_id: str, container: Container = Depends(get_container)):
    service = container.catalog.get(service_id)
    if service is None:
        raise NotFoundError("Service not found")
    return {"success": True, "service": service.model_dump(mode="json")}


@router.post("", status_code=201)
def create_service(
    payload: Service,
    principal: Principal = Depends(require("create_service")),
    container: Container = Depends(get_container),
):
    if container.catalog.get(payload.id) is not None:
        raise ValidationFailedError(f"Service {payload.id} already exists", code="already_exists")
    service = payload.model_copy(update={"bookings_count": 0})
    container.store.services.save(service)
    logger.info("Service %s created by %s", service.id, principal.actor)
    return {"success": True, "service": service.model_dump(mode="json")}


@router.put("/{service_id}")
def update_service(
    service_id: str,
    payload: ServiceUpdate,
    principal: Principal = Depends(require("update_service")),
    container: Container = Depends(get_container),
):
    service = container.catalog.get(service_id)
    if service is None:
        raise NotFoundError("Service not found")
    updated = service.model_copy(update=payload.model_dump(exclude_unset=True))
    container.store.services.save(updated)
    logger.info("Service %s updated by %s", service.id, principal.actor)
    return {"success": True, "service": updated.model_dump(mode="json")}
