from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from checkout.domain.errors import ValidationError, ZoneNotFoundError
from checkout.domain.models import ShippingZone
from shared.core import get_logger
from .schemas import ShippingZoneCreate

logger = get_logger(__name__)


def normalize_region(region: str) -> str:
    return " ".join(region.split()).casefold()


class ShippingZoneResolver:
    """
    Maps a destination region to the active zone that covers it.

    When a region is covered by more than one active zone the zone with the
    lowest id wins. Overlaps are refused at creation, so this only happens
    with data written around the service.
    """

    def __init__(self, db: Session):
        self.db = db

    def active_zones(self):
        return self.db.scalars(
            select(ShippingZone).where(ShippingZone.is_active.is_(True)).order_by(ShippingZone.id)
        ).all()

    def find(self, region: str) -> Optional[ShippingZone]:
        wanted = normalize_region(region)
        matches = [
            zone for zone in self.active_zones()
            if wanted in {normalize_region(r) for r in zone.regions or []}
        ]
        if len(matches) > 1:
            logger.warning(
                f"Region '{region}' is covered by {len(matches)} active zones; using zone {matches[0].id}",
                extra={'extra_fields': {'zone_ids': [z.id for z in matches]}},
            )
        return matches[0] if matches else None

    def resolve(self, region: str) -> ShippingZone:
        zone = self.find(region)
        if zone is None:
            raise ZoneNotFoundError(region)
        return zone

    def list_active(self):
        return sorted(self.active_zones(), key=lambda zone: (zone.fee, zone.id))

    def create_zone(self, data: ShippingZoneCreate) -> ShippingZone:
        regions = [" ".join(r.split()) for r in data.regions if r.strip()]
        if not regions:
            raise ValidationError("A shipping zone needs at least one region")

        if data.is_active:
            wanted = {normalize_region(r) for r in regions}
            for zone in self.active_zones():
                overlap = wanted & {normalize_region(r) for r in zone.regions or []}
                if overlap:
                    raise ValidationError(
                        f"Regions already covered by zone '{zone.name}': {', '.join(sorted(overlap))}"
                    )

        zone = ShippingZone(name=data.name, regions=regions, fee=data.fee, is_active=data.is_active)
        self.db.add(zone)
        self.db.commit()
        self.db.refresh(zone)
        return zone
