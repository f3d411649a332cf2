"""Business settings routes."""

from fastapi import APIRouter

from tillpoint.api.deps import CurrentStaff, SnapshotCache
from tillpoint.schemas.menu import BusinessSettingsResponse

router = APIRouter()


@router.get("/business", response_model=BusinessSettingsResponse)
def business_settings(staff: CurrentStaff, cache: SnapshotCache):
    snapshot = cache.get()
    business = snapshot.business
    return BusinessSettingsResponse(
        business_name=business.business_name,
        currency=business.currency,
        tax_rate=business.tax_rate,
        receipt_footer=business.receipt_footer,
        loaded_at=snapshot.loaded_at,
    )
