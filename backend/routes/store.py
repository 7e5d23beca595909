"""Store: product catalogue (free) and its admin management."""
from fastapi import APIRouter, Depends, HTTPException, status
from datetime import datetime, timezone
from database import database
from middleware import Viewer, admin_route_guard, require_feature
from models import AuditAction, AuditResource, StoreProductRequest, UserRole
from utils.audit import create_audit_log
import logging
import uuid

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/store", tags=["store"])
admin_router = APIRouter(prefix="/api/admin/store-products", tags=["admin-store"])


@router.get("/products")
async def list_products(viewer: Viewer = Depends(require_feature("store"))):
    db = database.get_db()
    products = await db.store_products.find({}, {"_id": 0}).sort("created_at", -1).to_list(length=200)
    return {"products": products}


@admin_router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(body: StoreProductRequest, viewer: Viewer = Depends(admin_route_guard)):
    db = database.get_db()
    product = {
        "product_id": str(uuid.uuid4()),
        **body.model_dump(mode="json"),
        "created_at": datetime.now(timezone.utc),
    }
    await db.store_products.insert_one(product.copy())

    await create_audit_log(
        action=AuditAction.STORE_PRODUCT_CREATED,
        actor_role=UserRole.ROLE_OWNER,
        actor_id=viewer.user_id,
        resource_type=AuditResource.STORE_PRODUCT,
        resource_id=product["product_id"],
        after_state={"name": body.name, "price": body.price},
    )
    return product


@admin_router.put("/{product_id}")
async def update_product(product_id: str, body: StoreProductRequest, viewer: Viewer = Depends(admin_route_guard)):
    db = database.get_db()
    before = await db.store_products.find_one({"product_id": product_id}, {"_id": 0})
    if not before:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    update = {**body.model_dump(mode="json"), "updated_at": datetime.now(timezone.utc)}
    await db.store_products.update_one({"product_id": product_id}, {"$set": update})

    await create_audit_log(
        action=AuditAction.STORE_PRODUCT_UPDATED,
        actor_role=UserRole.ROLE_OWNER,
        actor_id=viewer.user_id,
        resource_type=AuditResource.STORE_PRODUCT,
        resource_id=product_id,
        before_state={k: before.get(k) for k in ("name", "price", "purchase_url")},
        after_state={k: update.get(k) for k in ("name", "price", "purchase_url")},
    )
    return await db.store_products.find_one({"product_id": product_id}, {"_id": 0})


@admin_router.delete("/{product_id}")
async def delete_product(product_id: str, viewer: Viewer = Depends(admin_route_guard)):
    db = database.get_db()
    result = await db.store_products.delete_one({"product_id": product_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    await create_audit_log(
        action=AuditAction.STORE_PRODUCT_DELETED,
        actor_role=UserRole.ROLE_OWNER,
        actor_id=viewer.user_id,
        resource_type=AuditResource.STORE_PRODUCT,
        resource_id=product_id,
    )
    return {"product_id": product_id, "deleted": True}
