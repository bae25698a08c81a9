import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from concierge.agent import ChatReply, PharmacyAgent, new_session_id
from storefront import __version__
from storefront.carts import CartKey
from storefront.catalog import ProductFilter
from storefront.config import DATABASE_URL, PORT, SEED_ON_STARTUP
from storefront.errors import NotFound, StorefrontError, Unauthorized, ValidationError
from storefront.navigation import FEATURES, PAGES, find_pages
from storefront.schemas import (
    CartItemRequest,
    CartRemoveRequest,
    CartSessionRequest,
    ChatRequest,
    CheckoutRequest,
    Credentials,
    NavigationQuery,
    ProductOut,
    ProductUpdate,
    UserOut,
)
from storefront.services import Storefront

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()

router = APIRouter(prefix="/api")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# dependencies

def get_storefront(request: Request) -> Storefront:
    return request.app.state.storefront


def get_agent(request: Request) -> PharmacyAgent:
    return request.app.state.agent


def current_user(
    authorization: Optional[str] = Header(None),
    storefront: Storefront = Depends(get_storefront),
) -> Optional[UserOut]:
    return storefront.auth.user_from_header(authorization)


def cart_key_for(user: Optional[UserOut], session_id: Optional[str]) -> CartKey:
    """A logged-in user's cart wins over the anonymous session cart."""
    if user is not None:
        return CartKey.for_user(user.id)
    return CartKey.for_session(session_id)


# auth

@router.post("/auth/register", status_code=201)
def register(payload: Credentials, storefront: Storefront = Depends(get_storefront)):
    user = storefront.auth.register(payload.username, payload.password)
    return {"message": "User registered successfully", "user": user.to_json()}


@router.post("/auth/login")
def login(payload: Credentials, storefront: Storefront = Depends(get_storefront)):
    user, token = storefront.auth.login(payload.username, payload.password)
    response = {"message": "Login successful", "user": user.to_json(), "token": token}
    if payload.session_id:
        cart = storefront.carts.merge(CartKey.for_session(payload.session_id), CartKey.for_user(user.id))
        response["cart"] = cart.to_json()
    return response


@router.get("/auth/me")
def me(user: Optional[UserOut] = Depends(current_user)):
    if user is None:
        raise Unauthorized("Authentication required")
    return {"user": user.to_json()}


# products

@router.get("/products", response_model=List[ProductOut], response_model_by_alias=True)
def list_products(
    search: Optional[str] = None,
    q: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    limit: Optional[int] = None,
    storefront: Storefront = Depends(get_storefront),
):
    product_filter = ProductFilter.build(
        term=search or q,
        category=category,
        min_price=min_price,
        max_price=max_price,
        limit=limit,
    )
    return storefront.catalog.search(product_filter)


@router.get("/products/categories")
def list_categories(storefront: Storefront = Depends(get_storefront)):
    return {"categories": storefront.catalog.categories()}


@router.get("/products/{product_id}", response_model=ProductOut, response_model_by_alias=True)
def get_product(product_id: str, storefront: Storefront = Depends(get_storefront)):
    return storefront.catalog.get(product_id)


@router.put("/products/{product_id}")
def update_product(product_id: str, changes: ProductUpdate, storefront: Storefront = Depends(get_storefront)):
    product = storefront.catalog.update(product_id, changes)
    return {"message": "Product updated successfully", "product": product.to_json()}


# cart

@router.get("/cart")
def get_cart(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    user: Optional[UserOut] = Depends(current_user),
    storefront: Storefront = Depends(get_storefront),
):
    return storefront.carts.get_cart(cart_key_for(user, session_id)).to_json()


@router.post("/cart")
def add_to_cart(
    payload: CartItemRequest,
    user: Optional[UserOut] = Depends(current_user),
    storefront: Storefront = Depends(get_storefront),
):
    key = cart_key_for(user, payload.session_id)
    if not payload.product_id:
        raise ValidationError("Product ID is required")
    quantity = 1 if payload.quantity is None else payload.quantity
    cart = storefront.carts.add_item(key, payload.product_id, quantity)
    return {"message": "Product added to cart", "cart": cart.to_json()}


@router.put("/cart")
def update_cart_item(
    payload: CartItemRequest,
    user: Optional[UserOut] = Depends(current_user),
    storefront: Storefront = Depends(get_storefront),
):
    key = cart_key_for(user, payload.session_id)
    if not payload.product_id or payload.quantity is None:
        raise ValidationError("Product ID and quantity are required")
    cart = storefront.carts.set_quantity(key, payload.product_id, payload.quantity)
    message = "Product removed from cart" if payload.quantity <= 0 else "Cart updated"
    return {"message": message, "cart": cart.to_json()}


def _remove(storefront: Storefront, key: CartKey, product_id: Optional[str]):
    if not product_id:
        raise ValidationError("Session ID and Product ID are required")
    if not storefront.carts.remove_item(key, product_id):
        raise NotFound("Item not found in cart")
    cart = storefront.carts.get_cart(key)
    return {"message": "Product removed from cart", "cart": cart.to_json(), "removedProductId": product_id}


@router.delete("/cart")
def delete_cart_item(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    product_id: Optional[str] = Query(None, alias="productId"),
    user: Optional[UserOut] = Depends(current_user),
    storefront: Storefront = Depends(get_storefront),
):
    return _remove(storefront, cart_key_for(user, session_id), product_id)


@router.post("/cart/remove")
def remove_from_cart(
    payload: CartRemoveRequest,
    user: Optional[UserOut] = Depends(current_user),
    storefront: Storefront = Depends(get_storefront),
):
    return _remove(storefront, cart_key_for(user, payload.session_id), payload.product_id)


@router.delete("/cart/remove")
def remove_from_cart_by_query(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    product_id: Optional[str] = Query(None, alias="productId"),
    user: Optional[UserOut] = Depends(current_user),
    storefront: Storefront = Depends(get_storefront),
):
    return _remove(storefront, cart_key_for(user, session_id), product_id)


def _clear(storefront: Storefront, key: CartKey):
    cart = storefront.carts.clear(key)
    return {"message": "Cart cleared successfully", "cart": cart.to_json()}


@router.post("/cart/clear")
def clear_cart(
    payload: CartSessionRequest,
    user: Optional[UserOut] = Depends(current_user),
    storefront: Storefront = Depends(get_storefront),
):
    return _clear(storefront, cart_key_for(user, payload.session_id))


@router.delete("/cart/clear")
def clear_cart_by_query(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    user: Optional[UserOut] = Depends(current_user),
    storefront: Storefront = Depends(get_storefront),
):
    return _clear(storefront, cart_key_for(user, session_id))


@router.post("/cart/checkout")
def checkout(
    payload: CheckoutRequest,
    user: Optional[UserOut] = Depends(current_user),
    storefront: Storefront = Depends(get_storefront),
):
    order = storefront.carts.checkout(cart_key_for(user, payload.session_id), payload.customer_info)
    return {"message": "Order placed successfully", "order": order.to_json()}


# assistant

@router.post("/ai-chat", response_model=ChatReply, response_model_by_alias=True)
async def ai_chat(
    payload: ChatRequest,
    user: Optional[UserOut] = Depends(current_user),
    agent: PharmacyAgent = Depends(get_agent),
):
    if not payload.message or not payload.message.strip():
        raise ValidationError("Message is required")
    session_id = payload.session_id or new_session_id()
    try:
        return await agent.process_message(session_id, payload.message, user=user, context=payload.context)
    except StorefrontError:
        raise
    except Exception as e:
        logger.exception(f"Chat error for session {session_id}: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": "Sorry, I'm having trouble answering right now. Please try again in a moment."},
        )


@router.get("/ai-chat")
def ai_chat_session(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    action: str = "history",
    agent: PharmacyAgent = Depends(get_agent),
):
    if action == "config":
        return agent.config()
    if not session_id:
        raise ValidationError("Session ID is required")
    if action == "history":
        history = agent.history(session_id)
        return {
            "sessionId": session_id,
            "messages": [m.to_json() for m in history],
            "count": len(history),
        }
    if action == "context":
        return {"sessionId": session_id, "context": agent.context(session_id)}
    raise ValidationError(f"Unknown action: {action}")


@router.delete("/ai-chat")
def ai_chat_reset(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    agent: PharmacyAgent = Depends(get_agent),
):
    if not session_id:
        raise ValidationError("Session ID is required")
    if not agent.clear_session(session_id):
        raise NotFound("Chat session not found")
    return {"message": "Chat session cleared", "sessionId": session_id}


# navigation

@router.get("/navigation")
def navigation(storefront: Storefront = Depends(get_storefront)):
    return {
        "pages": [p.to_json() for p in PAGES],
        "categories": [{"name": c, "count": n} for c, n in storefront.catalog.category_counts().items()],
        "features": FEATURES,
    }


@router.post("/navigation")
def search_navigation(payload: NavigationQuery, storefront: Storefront = Depends(get_storefront)):
    if not payload.query or not payload.query.strip():
        raise ValidationError("Query is required")
    query = payload.query.strip().lower()
    categories = [c for c in storefront.catalog.categories() if query in c.lower() or c.lower() in query]
    return {
        "query": payload.query,
        "pages": [p.to_json() for p in find_pages(query)],
        "categories": categories,
    }


# warmup

@router.api_route("/warmup", methods=["GET", "POST"])
def warmup():
    return {
        "status": "ok",
        "message": "Service is warm",
        "timestamp": _now(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
    }


# error mapping

async def storefront_error_handler(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query"))
        problems.append(f"{location}: {error.get('msg')}" if location else error.get("msg", "invalid"))
    return JSONResponse(status_code=400, content={"error": "Invalid request: " + "; ".join(problems)})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    storefront: Optional[Storefront] = None,
    agent: Optional[PharmacyAgent] = None,
    seed: bool = SEED_ON_STARTUP,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "storefront", None) is None:
            app.state.storefront = await run_in_threadpool(Storefront.from_url, DATABASE_URL)
        if seed:
            inserted = await run_in_threadpool(app.state.storefront.seed)
            if inserted:
                logger.info(f"Seeded catalog with {inserted} products")
        if getattr(app.state, "agent", None) is None:
            app.state.agent = PharmacyAgent(app.state.storefront)
        logger.info("Pharmacy storefront started")
        yield
        logger.info("Pharmacy storefront shutting down")

    app = FastAPI(title="Pharmacy Storefront", version=__version__, lifespan=lifespan)
    app.state.storefront = storefront
    app.state.agent = agent if agent is not None else (PharmacyAgent(storefront) if storefront else None)

    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(router)

    @app.get("/health")
    def health_check(request: Request):
        current = request.app.state.storefront
        database_ok = current.database.ping()
        return {
            "status": "healthy" if database_ok else "degraded",
            "service": "pharmacy-storefront",
            "version": __version__,
            "database": "ok" if database_ok else "down",
            "products": current.catalog.count() if database_ok else 0,
            "llm": "enabled" if request.app.state.agent.llm.enabled else "disabled",
        }

    @app.get("/")
    def root():
        return {
            "service": "Pharmacy Storefront",
            "version": __version__,
            "status": "running",
            "endpoints": [
                "/api/auth/register", "/api/auth/login", "/api/auth/me",
                "/api/products", "/api/products/{id}", "/api/products/categories",
                "/api/cart", "/api/cart/remove", "/api/cart/clear", "/api/cart/checkout",
                "/api/ai-chat", "/api/navigation", "/api/warmup", "/health", "/docs",
            ],
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=PORT)
