"""
Catalog endpoints — the minimal product surface checkout depends on.

Product images and categories are managed elsewhere; responses never carry
the photo blob.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import Pagination, pagination_params, require_admin
from domain.errors import NotFoundError
from domain.responses import paginated_response, success_response
from middleware.auth import Identity
from models import ProductCreateRequest
from services import catalog_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["products"])


@router.post("/product", status_code=201)
async def create_product(
    request: ProductCreateRequest,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product = await catalog_service.create_product(
        db,
        name=request.name,
        description=request.description,
        price=request.price,
        quantity=request.quantity,
        shipping=request.shipping,
    )
    await db.commit()
    return success_response(data=catalog_service.product_projection(product))


@router.get("/products")
async def list_products(
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    products = await catalog_service.list_products(db, **page)
    return paginated_response(
        [catalog_service.product_projection(p) for p in products],
        limit=page["limit"],
        offset=page["offset"],
        total=await catalog_service.count_products(db),
    )


@router.get("/product/{product_id}")
async def get_product(product_id: str, db: AsyncSession = Depends(get_db)):
    product = await catalog_service.get_product(db, product_id)
    if not product:
        raise NotFoundError("Product", product_id)
    return success_response(data=catalog_service.product_projection(product))
