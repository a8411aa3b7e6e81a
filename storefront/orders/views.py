import logging
from typing import Any, Dict, Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from storefront.app_setup.services import Services, get_services
from storefront.utils.security import require_admin, require_user
from .service import OrderService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/orders", tags=["Orders API"])
admin_router = APIRouter(prefix="/api/v1/admin/orders", tags=["Admin"])


class StatusBody(BaseModel):
    status: Literal["pending", "processing", "shipped", "completed", "cancelled"]


def get_order_service(services: Services = Depends(get_services)) -> OrderService:
    return OrderService(services.orders)


# module storefront.orders.views
@router.get("")
async def my_orders(user: Dict[str, Any] = Depends(require_user), orders: OrderService = Depends(get_order_service)):
    """Commandes matérialisées de l'utilisateur, plus récentes d'abord, avec leurs lignes."""
    return await run_in_threadpool(orders.list_for_owner, user["id"])


@admin_router.get("")
async def admin_list_orders(
    limit: int = Query(default=100, ge=1, le=500),
    admin: Dict[str, Any] = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
):
    return await run_in_threadpool(orders.list_all, limit)


@admin_router.put("/{order_id}/status")
async def admin_update_status(
    order_id: str,
    body: StatusBody,
    admin: Dict[str, Any] = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
):
    """404 si commande inconnue, 409 si le statut recule ou a changé entre-temps."""
    updated = await run_in_threadpool(orders.change_status, order_id, body.status)
    logger.info("admin.orders.status by=%s order_id=%s status=%s", admin.get("email"), order_id, body.status)
    return {"status": "ok", "order": updated}
