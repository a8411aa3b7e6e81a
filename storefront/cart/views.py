"""Endpoints du panier (API JSON, utilisateur authentifié).
- GET    /api/v1/cart            : lignes, sous-total, frais de port, total
- POST   /api/v1/cart            : ajout (fusion avec la ligne produit/variante existante)
- PUT    /api/v1/cart/{line_id}  : nouvelle quantité
- DELETE /api/v1/cart/{line_id}  : suppression d'une ligne
- DELETE /api/v1/cart            : vidage
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from storefront.app_setup.services import Services, get_services
from storefront.utils.security import require_user
from .service import CartLineNotFound, CartService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/cart", tags=["Cart API"])


class AddItemBody(BaseModel):
    product_id: str = Field(min_length=1)
    variant_id: Optional[str] = None
    quantity: int = Field(default=1, ge=1, le=99)


class QuantityBody(BaseModel):
    quantity: int = Field(ge=1, le=99)


def get_cart_service(services: Services = Depends(get_services)) -> CartService:
    return CartService(services.carts, services.settings)


@router.get("")
async def get_cart(user: Dict[str, Any] = Depends(require_user), cart: CartService = Depends(get_cart_service)):
    return await run_in_threadpool(cart.view, user["id"])


@router.post("", status_code=201)
async def add_to_cart(
    body: AddItemBody,
    user: Dict[str, Any] = Depends(require_user),
    cart: CartService = Depends(get_cart_service),
):
    row = await run_in_threadpool(cart.add, user["id"], body.product_id, body.variant_id, body.quantity)
    return {"status": "ok", "item": row}


@router.put("/{line_id}")
async def update_cart_line(
    line_id: str,
    body: QuantityBody,
    user: Dict[str, Any] = Depends(require_user),
    cart: CartService = Depends(get_cart_service),
):
    try:
        row = await run_in_threadpool(cart.set_quantity, user["id"], line_id, body.quantity)
    except CartLineNotFound:
        raise HTTPException(status_code=404, detail="Article introuvable dans le panier")
    return {"status": "ok", "item": row}


@router.delete("/{line_id}")
async def delete_cart_line(
    line_id: str,
    user: Dict[str, Any] = Depends(require_user),
    cart: CartService = Depends(get_cart_service),
):
    try:
        await run_in_threadpool(cart.remove, user["id"], line_id)
    except CartLineNotFound:
        raise HTTPException(status_code=404, detail="Article introuvable dans le panier")
    return {"status": "ok"}


@router.delete("")
async def clear_cart(user: Dict[str, Any] = Depends(require_user), cart: CartService = Depends(get_cart_service)):
    removed = await run_in_threadpool(cart.clear, user["id"])
    return {"status": "ok", "removed": removed}
