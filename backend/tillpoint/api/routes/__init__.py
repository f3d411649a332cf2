"""API routes."""

from fastapi import APIRouter

from tillpoint.api.routes import (
    auth, dashboard, menu, orders, payments, receipts, settings, shifts, tables,
    websocket_endpoints,
)

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(payments.router, prefix="/orders", tags=["payments"])
api_router.include_router(receipts.router, prefix="/receipts", tags=["payments"])
api_router.include_router(shifts.router, prefix="/shifts", tags=["shifts"])
api_router.include_router(tables.router, prefix="/tables", tags=["tables"])
api_router.include_router(menu.router, prefix="/menu", tags=["menu"])
api_router.include_router(settings.router, prefix="/settings", tags=["settings"])
api_router.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
api_router.include_router(websocket_endpoints.router, prefix="/ws", tags=["websocket"])
