"""Service catalog with pricing, durations, and descriptions."""

from typing import Optional

from salon.schemas.service_schema import Service, ServiceCategory

SERVICE_CATALOG: dict[str, dict] = {
    "precision-cut": {
        "name": "Precision Cut",
        "description": "Expert cutting techniques that enhance your natural features and lifestyle.",
        "category": ServiceCategory.CUTS,
        "price_cents": 8500,
        "duration_minutes": 60,
    },
    "color-services": {
        "name": "Color Services",
        "description": "Full color, highlights, lowlights, and color correction services.",
        "category": ServiceCategory.COLOR,
        "price_cents": 12000,
        "duration_minutes": 120,
    },
    "cut-and-color": {
        "name": "Cut & Color Package",
        "description": "Complete transformation with precision cut and color services.",
        "category": ServiceCategory.PACKAGES,
        "price_cents": 18500,
        "duration_minutes": 180,
    },
    "event-styling": {
        "name": "Special Event Styling",
        "description": "Professional styling for weddings, events, and special occasions.",
        "category": ServiceCategory.STYLING,
        "price_cents": 9500,
        "duration_minutes": 90,
    },
    "style-consultation": {
        "name": "Style Consultation",
        "description": "In-depth consultation to design your perfect look and style plan.",
        "category": ServiceCategory.CONSULTATIONS,
        "price_cents": 3500,
        "duration_minutes": 30,
    },
    "maintenance-touch-up": {
        "name": "Maintenance Touch-Up",
        "description": "Regular maintenance cuts and quick color touch-ups between appointments.",
        "category": ServiceCategory.CUTS,
        "price_cents": 5500,
        "duration_minutes": 45,
    },
}


def default_services() -> list[Service]:
    """Return the seed catalog as fresh Service models."""
    return [Service(id=sid, **info) for sid, info in SERVICE_CATALOG.items()]


class ServiceCatalog:
    """
    Read side of the service catalog.

    Wraps whichever service repository the app was built with so the
    booking engine never touches catalog storage directly.
    """

    def __init__(self, repository) -> None:
        self._repository = repository

    def get(self, service_id: str) -> Optional[Service]:
        return self._repository.get(service_id.lower().strip())

    def list(
        self, category: Optional[ServiceCategory] = None, active_only: bool = True
    ) -> list[Service]:
        services = self._repository.list()
        if active_only:
            services = [s for s in services if s.is_active]
        if category is not None:
            services = [s for s in services if s.category == category]
        return sorted(services, key=lambda s: (s.category.value, s.name))
