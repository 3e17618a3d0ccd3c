import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, File, Form, Query, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from fastapi.staticfiles import StaticFiles

import config
import database
from assets import AssetStore
from auth import (
    UserStore,
    create_access_token,
    current_user,
    ensure_default_admin,
    extract_token,
    is_admin,
    require_admin,
    require_user,
    resolve_token,
)
from backgrounds import MAX_BACKGROUND_NAME, BackgroundStore
from catalog import ProductStore, serialize_product
from database import ensure_indexes, get_db, serialize
from errors import (
    AuthenticationError,
    AuthorizationError,
    InvalidTokenError,
    ValidationError,
    register_exception_handlers,
)
from notifications import send_download_email
from orders import OrderStore, is_fulfilled
from schemas import (
    BackgroundUpdate,
    EmailRequest,
    LoginRequest,
    OrderCreate,
    OrderUpdate,
    PasswordChange,
    ProductCreate,
    ProductUpdate,
    UserCreate,
)

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    for sub in ("uploads", "watermarks"):
        Path(config.PUBLIC_DIR, sub).mkdir(parents=True, exist_ok=True)
    if database.db is None:
        logger.warning("DATABASE_URL / DATABASE_NAME not set, data routes will answer 500")
    else:
        ensure_indexes(database.db)
        ensure_default_admin(database.db)
    yield


app = FastAPI(title="Seratus Studio Shop API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.middleware("http")
async def admin_page_guard(request: Request, call_next):
    # pages only check that the cookie exists; the API verifies it
    if request.url.path.startswith("/admin/") and not request.cookies.get(config.AUTH_COOKIE_NAME):
        return RedirectResponse(url="/admin", status_code=307)
    return await call_next(request)


# Helpers

def get_public_dir() -> Path:
    return Path(config.PUBLIC_DIR)


def get_asset_store(public_dir: Path = Depends(get_public_dir)) -> AssetStore:
    return AssetStore(public_dir)


def get_background_store(db=Depends(get_db), public_dir: Path = Depends(get_public_dir)) -> BackgroundStore:
    return BackgroundStore(db, public_dir)


def user_summary(user: dict) -> dict:
    return {
        "id": user["id"],
        "username": user["username"],
        "email": user["email"],
        "role": user["role"],
        "last_login": user.get("last_login"),
    }


@app.get("/")
def read_root():
    return {"message": "Seratus Studio backend is running"}


# Auth
@app.post("/api/auth")
def login(payload: LoginRequest, response: Response, db=Depends(get_db)):
    if not payload.username or not payload.password:
        raise ValidationError("Username and password are required")
    user = UserStore(db).authenticate(payload.username, payload.password)
    if not user:
        logger.info(f"Failed login for '{payload.username}'")
        raise AuthenticationError("Invalid credentials")

    token = create_access_token(user["id"], user["username"], user["role"])
    response.set_cookie(
        config.AUTH_COOKIE_NAME,
        token,
        max_age=config.TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=config.ENVIRONMENT == "production",
        samesite="strict",
    )
    logger.info(f"User '{user['username']}' logged in")
    return {"message": "Login successful", "user": user_summary(user), "token": token}


@app.get("/api/auth")
def me(request: Request, db=Depends(get_db)):
    token = extract_token(request)
    if not token:
        raise AuthenticationError("No token provided")
    user = resolve_token(token, db)
    if not user:
        raise InvalidTokenError("Invalid token")
    return {"user": user_summary(user)}


@app.delete("/api/auth")
def logout(response: Response):
    response.delete_cookie(
        config.AUTH_COOKIE_NAME,
        httponly=True,
        secure=config.ENVIRONMENT == "production",
        samesite="strict",
    )
    return {"message": "Logout successful"}


@app.put("/api/auth")
def change_password(payload: PasswordChange, user: dict = Depends(require_user), db=Depends(get_db)):
    UserStore(db).change_password(user["id"], payload.current_password, payload.new_password)
    return {"message": "Password updated successfully"}


# Users (admin)
@app.get("/api/admin/users")
def list_users(admin: dict = Depends(require_admin), db=Depends(get_db)):
    return UserStore(db).list()


@app.post("/api/admin/users", status_code=201)
def create_user(payload: UserCreate, admin: dict = Depends(require_admin), db=Depends(get_db)):
    return UserStore(db).create(payload.username, payload.email, payload.password, payload.role)


@app.delete("/api/admin/users")
def delete_user(id: Optional[str] = None, admin: dict = Depends(require_admin), db=Depends(get_db)):
    if not id:
        raise ValidationError("User ID is required")
    if id == admin["id"]:
        raise ValidationError("Cannot delete your own account")
    UserStore(db).delete(id)
    return {"message": "User deleted successfully"}


# Catalog
@app.get("/api/products")
def list_products(
    page: int = 1,
    limit: int = 12,
    search: Optional[str] = None,
    category: Optional[str] = None,
    tags: Optional[str] = Query(None, description="Comma separated"),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    sort_by: str = "created_at",
    sort_order: str = Query("desc", description="asc|desc"),
    db=Depends(get_db),
):
    tag_list = [t.strip() for t in tags.split(",") if t.strip()] if tags else None
    result = ProductStore(db).list(
        page=page,
        limit=limit,
        search=search,
        category=category,
        tags=tag_list,
        min_price=min_price,
        max_price=max_price,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return {
        "products": [serialize_product(p) for p in result["items"]],
        "pagination": result["pagination"],
        "filters": result["filters"],
    }


@app.get("/api/products/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    store = ProductStore(db)
    product = store.get(product_id)
    related = store.find_related(product)
    return {
        "product": serialize_product(product),
        "related_products": [serialize_product(r) for r in related],
    }


@app.post("/api/products", status_code=201)
def create_product(payload: ProductCreate, admin: dict = Depends(require_admin), db=Depends(get_db)):
    product = ProductStore(db).create(payload)
    logger.info(f"Product '{product['title']}' created by {admin['username']}")
    return {"message": "Product created successfully", "product": serialize_product(product)}


@app.put("/api/products")
def update_product(payload: ProductUpdate, admin: dict = Depends(require_admin), db=Depends(get_db)):
    product = ProductStore(db).update(payload.id, payload)
    return {"message": "Product updated successfully", "product": serialize_product(product)}


@app.delete("/api/products")
def delete_product(id: Optional[str] = None, admin: dict = Depends(require_admin), db=Depends(get_db)):
    if not id:
        raise ValidationError("Product ID is required")
    ProductStore(db).deactivate(id)
    return {"message": "Product deleted successfully"}


@app.delete("/api/admin/cleanup/products")
def cleanup_products(admin: dict = Depends(require_admin), db=Depends(get_db)):
    deleted = ProductStore(db).bulk_delete()
    logger.warning(f"{admin['username']} deleted all {deleted} products")
    return {
        "success": True,
        "message": f"Successfully deleted {deleted} products",
        "deleted_count": deleted,
    }


# Orders
@app.get("/api/orders")
def list_orders(
    page: int = 1,
    limit: int = 10,
    email: Optional[str] = None,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    user: Optional[dict] = Depends(current_user),
    db=Depends(get_db),
):
    # customers may only look up orders by their own email
    if not is_admin(user) and not email:
        raise AuthenticationError("Unauthorized")
    result = OrderStore(db, ProductStore(db)).list(
        page=page, limit=limit, email=email, delivery_status=status, payment_status=payment_status
    )
    return {"orders": [serialize(o) for o in result["items"]], "pagination": result["pagination"]}


@app.post("/api/orders", status_code=201)
def create_order(payload: OrderCreate, db=Depends(get_db)):
    order = OrderStore(db, ProductStore(db)).create(payload)
    return {"message": "Order created successfully", "order": serialize(order)}


@app.put("/api/orders")
def confirm_order(
    payload: OrderUpdate,
    background_tasks: BackgroundTasks,
    admin: dict = Depends(require_admin),
    db=Depends(get_db),
):
    order, opened = OrderStore(db, ProductStore(db)).confirm(payload.id, payload)
    if is_fulfilled(order) and order.get("download_link"):
        background_tasks.add_task(send_download_email, order["customer_email"], order["download_link"])
    return {"message": "Order updated successfully", "order": serialize(order), "download_window_opened": opened}


@app.get("/api/orders/{order_id}/download")
def order_download(order_id: str, email: Optional[str] = None, db=Depends(get_db)):
    return OrderStore(db, ProductStore(db)).download(order_id, email)


@app.post("/api/send-email")
def send_email(payload: EmailRequest, admin: dict = Depends(require_admin)):
    sent = send_download_email(str(payload.to), payload.file_link, payload.subject)
    return {
        "success": sent,
        "message": "Email sent successfully" if sent else "Email was not delivered",
    }


# Settings assets
@app.get("/api/settings/{kind}")
def get_asset(kind: str, store: AssetStore = Depends(get_asset_store)):
    url = store.get(kind)
    return {
        "success": True,
        "kind": kind,
        "url": url or store.kind(kind).default_url,
        "has_custom": url is not None,
    }


@app.post("/api/settings/{kind}")
def upload_asset(
    kind: str,
    file: UploadFile = File(...),
    admin: dict = Depends(require_admin),
    store: AssetStore = Depends(get_asset_store),
):
    data = file.file.read()
    url = store.upload(kind, data, file.content_type)
    return {"success": True, "message": f"{kind} uploaded successfully", "url": url}


@app.delete("/api/settings/{kind}")
def remove_asset(kind: str, admin: dict = Depends(require_admin), store: AssetStore = Depends(get_asset_store)):
    removed = store.remove(kind)
    return {
        "success": True,
        "removed": removed,
        "message": f"{kind} reset to default" if removed else f"No custom {kind} to remove",
    }


# Backgrounds
@app.get("/api/backgrounds")
def list_backgrounds(
    active: Optional[bool] = None,
    page: int = 1,
    limit: int = 10,
    user: Optional[dict] = Depends(current_user),
    store: BackgroundStore = Depends(get_background_store),
):
    if active:
        return {"background": serialize(store.get_active())}
    if user is None:
        raise AuthenticationError("Unauthorized")
    if not is_admin(user):
        raise AuthorizationError()
    result = store.list(page=page, limit=limit)
    return {"backgrounds": [serialize(b) for b in result["items"]], "pagination": result["pagination"]}


@app.post("/api/backgrounds", status_code=201)
def upload_background(
    file: UploadFile = File(...),
    name: str = Form(..., max_length=MAX_BACKGROUND_NAME),
    set_active: bool = Form(True),
    admin: dict = Depends(require_admin),
    store: BackgroundStore = Depends(get_background_store),
):
    data = file.file.read()
    background = store.create(name, data, file.content_type, set_active=set_active)
    return {"message": "Background uploaded successfully", "background": serialize(background)}


@app.put("/api/backgrounds")
def update_background(
    payload: BackgroundUpdate,
    admin: dict = Depends(require_admin),
    store: BackgroundStore = Depends(get_background_store),
):
    background = store.update(payload.id, is_active=payload.is_active, name=payload.name)
    return {"message": "Background updated successfully", "background": serialize(background)}


@app.delete("/api/backgrounds")
def delete_background(
    id: Optional[str] = None,
    admin: dict = Depends(require_admin),
    store: BackgroundStore = Depends(get_background_store),
):
    if not id:
        raise ValidationError("Background ID is required")
    store.delete(id)
    return {"message": "Background deleted successfully"}


# Uploaded files are served from the public directory
app.mount(
    "/uploads",
    StaticFiles(directory=os.path.join(config.PUBLIC_DIR, "uploads"), check_dir=False),
    name="uploads",
)
app.mount(
    "/watermarks",
    StaticFiles(directory=os.path.join(config.PUBLIC_DIR, "watermarks"), check_dir=False),
    name="watermarks",
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
