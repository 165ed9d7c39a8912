import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from marketplace import config
from marketplace.cart import repository as cart_repo
from marketplace.cart import service as cart_service
from marketplace.errors import AlreadyOwnedError, CatalogItemNotFoundError
from marketplace.payments.commission import format_amount, gross_of
from marketplace.utils.rate_limit import optional_rate_limit
from marketplace.utils.security import require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/cart", tags=["Cart API"])


class AddToCartRequest(BaseModel):
    item_ref: str = Field(min_length=1, max_length=200)


# module marketplace.cart.views
@router.get("")
async def get_cart(user: dict = Depends(require_user)):
    """Lignes du panier + total (montants à deux décimales)."""
    lines = cart_repo.get_cart_lines(user["id"])
    return {
        "items": [
            {"item_ref": line.item_ref, "price": format_amount(line.unit_price), "seller_id": line.seller_id}
            for line in lines
        ],
        "total": format_amount(gross_of(lines)),
        "currency": config.PAYMENT_CURRENCY,
    }

@router.post("/items", dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
async def add_item(body: AddToCartRequest, user: dict = Depends(require_user)):
    """
    Ajoute un article au panier (prix du catalogue).
    - 404 article inconnu, 400 article déjà possédé
    """
    try:
        return cart_service.add_to_cart(user["id"], body.item_ref)
    except HTTPException:
        raise
    except CatalogItemNotFoundError:
        raise HTTPException(status_code=404, detail="Article introuvable")
    except AlreadyOwnedError:
        raise HTTPException(status_code=400, detail="Article déjà possédé")
    except Exception:
        logger.exception("cart.views.add_item failed user=%s item_ref=%s", user.get("id"), body.item_ref)
        raise HTTPException(status_code=500, detail="Erreur lors de l'ajout au panier")

@router.delete("/items/{item_ref}")
async def remove_item(item_ref: str, user: dict = Depends(require_user)):
    return cart_service.remove_from_cart(user["id"], item_ref)

@router.get("/owned")
async def get_owned_items(user: dict = Depends(require_user)):
    return {"items": cart_repo.list_owned_items(user["id"])}
