"""Menu routes, served from the business snapshot."""

from typing import List

from fastapi import APIRouter

from tillpoint.api.deps import CurrentStaff, SnapshotCache
from tillpoint.schemas.menu import CategoryResponse, MenuItemResponse, ModifierResponse

router = APIRouter()


@router.get("/items", response_model=List[MenuItemResponse])
def list_menu_items(staff: CurrentStaff, cache: SnapshotCache):
    return list(cache.get().menu_items)


@router.get("/categories", response_model=List[CategoryResponse])
def list_categories(staff: CurrentStaff, cache: SnapshotCache):
    return list(cache.get().categories)


@router.get("/modifiers", response_model=List[ModifierResponse])
def list_modifiers(staff: CurrentStaff, cache: SnapshotCache):
    return list(cache.get().modifiers)
