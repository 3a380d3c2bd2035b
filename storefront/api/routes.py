from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from storefront.exceptions import (
    AuthError,
    BackendError,
    CheckoutFailed,
    CheckoutInProgress,
    CheckoutValidationError,
)
from storefront.models.cart import AddToCart, CartView, UpdateQuantity
from storefront.models.catalog import Product, ProductFilters, ProductIn, ProductSort
from storefront.models.checkout import CheckoutPayload, CheckoutReceipt
from storefront.models.session import AdminSession, Credentials
from storefront.services.checkout import CheckoutOrchestrator
from storefront.state.cart import Cart
from storefront.state.session import SessionContext
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

def get_backend(request: Request):
    return request.app.state.backend

def get_cart(request: Request) -> Cart:
    return request.app.state.cart

def get_checkout(request: Request) -> CheckoutOrchestrator:
    return request.app.state.checkout

def get_session(request: Request) -> SessionContext:
    return request.app.state.session

def bearer_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return None

def require_admin(
    token: Optional[str] = Depends(bearer_token),
    session: SessionContext = Depends(get_session),
) -> AdminSession:
    if not session.is_authorized(token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin session required")
    return session.current

@router.get("/ping")
async def ping():
    return {"status": "ok"}

# Catalog

@router.get("/products", response_model=List[Product])
async def list_products(
    search: Optional[str] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
    category: Optional[str] = None,
    sort: ProductSort = ProductSort.NAME,
    backend=Depends(get_backend),
):
    filters = ProductFilters(
        search=search, min_price=min_price, max_price=max_price, category=category, sort=sort
    )
    try:
        return await backend.list_products(filters)
    except BackendError:
        raise HTTPException(status_code=502, detail="Could not load products. Please try again later.")

@router.get("/categories", response_model=List[str])
async def list_categories(backend=Depends(get_backend)):
    try:
        return await backend.list_categories()
    except BackendError:
        raise HTTPException(status_code=502, detail="Could not load categories.")

# Cart

@router.get("/cart", response_model=CartView)
async def show_cart(cart: Cart = Depends(get_cart)):
    return cart.view()

@router.post("/cart/items", response_model=CartView)
async def add_to_cart(body: AddToCart, cart: Cart = Depends(get_cart), backend=Depends(get_backend)):
    try:
        product = await backend.get_product(body.product_id)
    except BackendError:
        raise HTTPException(status_code=502, detail="Could not load product.")
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")

    cart.add(product)
    logger.info(f"[Cart] Added {product.id} ({cart.item_count()} item(s) in cart)")
    return cart.view()

@router.put("/cart/items/{product_id}", response_model=CartView)
async def update_cart_item(product_id: str, body: UpdateQuantity, cart: Cart = Depends(get_cart)):
    cart.set_quantity(product_id, body.quantity)
    return cart.view()

@router.delete("/cart/items/{product_id}", response_model=CartView)
async def remove_cart_item(product_id: str, cart: Cart = Depends(get_cart)):
    cart.remove(product_id)
    return cart.view()

@router.delete("/cart", response_model=CartView)
async def clear_cart(cart: Cart = Depends(get_cart)):
    cart.clear()
    return cart.view()

# Checkout

@router.post("/checkout", response_model=CheckoutReceipt, status_code=201)
async def checkout(payload: CheckoutPayload, orchestrator: CheckoutOrchestrator = Depends(get_checkout)):
    try:
        return await orchestrator.submit(payload)
    except CheckoutValidationError as e:
        raise HTTPException(status_code=400, detail=e.user_message)
    except CheckoutInProgress as e:
        raise HTTPException(status_code=409, detail=e.user_message)
    except CheckoutFailed as e:
        raise HTTPException(status_code=502, detail=e.user_message)

@router.get("/checkout/status")
async def checkout_status(orchestrator: CheckoutOrchestrator = Depends(get_checkout)):
    return {"status": orchestrator.state.value, "error": orchestrator.last_error}

# Admin

@router.post("/admin/login", response_model=AdminSession)
async def admin_login(credentials: Credentials, session: SessionContext = Depends(get_session)):
    try:
        return await session.sign_in(credentials.email, credentials.password)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=f"Error: {e}")

@router.post("/admin/logout")
async def admin_logout(
    admin: AdminSession = Depends(require_admin),
    session: SessionContext = Depends(get_session),
):
    try:
        await session.sign_out()
    except AuthError as e:
        logger.error(f"[Admin] Sign-out for {admin.email} failed upstream: {e}")
    return {"status": "signed_out"}

@router.get("/admin/products", response_model=List[Product])
async def admin_list_products(
    admin: AdminSession = Depends(require_admin),
    backend=Depends(get_backend),
):
    try:
        return await backend.list_products(ProductFilters(sort=ProductSort.NEWEST))
    except BackendError:
        raise HTTPException(status_code=502, detail="Could not load products.")

@router.post("/admin/products", response_model=Product, status_code=201)
async def admin_create_product(
    body: ProductIn,
    admin: AdminSession = Depends(require_admin),
    backend=Depends(get_backend),
):
    try:
        product = await backend.create_product(body)
    except BackendError:
        raise HTTPException(status_code=502, detail="Could not create product.")
    logger.info(f"[Admin] {admin.email} created product {product.id}")
    return product

@router.put("/admin/products/{product_id}", response_model=Product)
async def admin_update_product(
    product_id: str,
    body: ProductIn,
    admin: AdminSession = Depends(require_admin),
    backend=Depends(get_backend),
):
    try:
        product = await backend.update_product(product_id, body)
    except BackendError:
        raise HTTPException(status_code=502, detail="Could not update product.")
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    logger.info(f"[Admin] {admin.email} updated product {product_id}")
    return product

@router.delete("/admin/products/{product_id}", status_code=204)
async def admin_delete_product(
    product_id: str,
    admin: AdminSession = Depends(require_admin),
    backend=Depends(get_backend),
):
    try:
        deleted = await backend.delete_product(product_id)
    except BackendError:
        raise HTTPException(status_code=502, detail="Could not delete product.")
    if not deleted:
        raise HTTPException(status_code=404, detail="Product not found")
    logger.info(f"[Admin] {admin.email} deleted product {product_id}")
