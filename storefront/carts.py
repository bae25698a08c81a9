import logging
import secrets
import string
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from storefront.database import Database
from storefront.errors import NotFound, ValidationError
from storefront.models import Cart, CartItem, Product, utcnow
from storefront.schemas import CartLine, CartOut, OrderOut

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartKey:
    """Identifies a cart: an anonymous session or an authenticated user, never both."""

    session_id: Optional[str] = None
    user_id: Optional[str] = None

    def __post_init__(self):
        if bool(self.session_id) == bool(self.user_id):
            raise ValidationError("Session ID is required")

    @classmethod
    def for_session(cls, session_id: Optional[str]) -> "CartKey":
        if not session_id or not session_id.strip():
            raise ValidationError("Session ID is required")
        return cls(session_id=session_id.strip())

    @classmethod
    def for_user(cls, user_id: str) -> "CartKey":
        return cls(user_id=user_id)

    def __str__(self):
        return f"user:{self.user_id}" if self.user_id else f"session:{self.session_id}"


def _check_quantity(quantity: Any) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer")
    return quantity


def _new_order_id() -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(10))


class CartStore:
    """The single cart implementation. Every mutation recomputes the stored total."""

    def __init__(self, database: Database):
        self.database = database

    # -- helpers ---------------------------------------------------------

    def _load(self, session: Session, key: CartKey) -> Optional[Cart]:
        statement = select(Cart).options(selectinload(Cart.items).selectinload(CartItem.product))
        if key.user_id:
            statement = statement.where(Cart.user_id == key.user_id)
        else:
            statement = statement.where(Cart.session_id == key.session_id)
        return session.scalars(statement).first()

    def _load_or_create(self, session: Session, key: CartKey) -> Cart:
        cart = self._load(session, key)
        if cart is None:
            cart = Cart(session_id=key.session_id, user_id=key.user_id, total=0.0, items=[])
            session.add(cart)
            session.flush()
            logger.info(f"Created cart for {key}")
        return cart

    @staticmethod
    def _recompute_total(cart: Cart) -> float:
        cart.total = round(sum(item.quantity * item.product.price for item in cart.items), 2)
        cart.updated_at = utcnow()
        return cart.total

    @staticmethod
    def _view(key: CartKey, cart: Optional[Cart]) -> CartOut:
        if cart is None:
            return CartOut(session_id=key.session_id, user_id=key.user_id)
        lines = [
            CartLine(
                product_id=item.product_id,
                name=item.product.name,
                category=item.product.category,
                price=item.product.price,
                quantity=item.quantity,
                prescription=item.product.prescription,
                subtotal=round(item.quantity * item.product.price, 2),
            )
            for item in cart.items
        ]
        return CartOut(
            session_id=key.session_id,
            user_id=key.user_id,
            items=lines,
            # derived from current prices, not the stored snapshot
            total=round(sum(line.subtotal for line in lines), 2),
            item_count=sum(line.quantity for line in lines),
        )

    @staticmethod
    def _find_item(cart: Cart, product_id: str) -> Optional[CartItem]:
        return next((item for item in cart.items if item.product_id == product_id), None)

    # -- operations ------------------------------------------------------

    def get_cart(self, key: CartKey) -> CartOut:
        with self.database.session() as session:
            return self._view(key, self._load(session, key))

    def add_item(self, key: CartKey, product_id: str, quantity: int = 1) -> CartOut:
        if not product_id:
            raise ValidationError("Product ID is required")
        quantity = _check_quantity(quantity)
        with self.database.session() as session:
            product = session.get(Product, product_id)
            if product is None:
                raise NotFound("Product not found")
            if product.stock < quantity:
                raise ValidationError(f"Insufficient stock for {product.name}. Available: {product.stock}")

            cart = self._load_or_create(session, key)
            item = self._find_item(cart, product_id)
            if item is None:
                cart.items.append(CartItem(product=product, quantity=quantity))
            else:
                if item.quantity + quantity > product.stock:
                    raise ValidationError(
                        f"Quantity exceeds available stock for {product.name}. Available: {product.stock}"
                    )
                item.quantity += quantity
            self._recompute_total(cart)
            session.flush()
            logger.info(f"Added {quantity}x {product_id} to cart {key}")
            return self._view(key, cart)

    def set_quantity(self, key: CartKey, product_id: str, quantity: int) -> CartOut:
        """Set a line's quantity; zero or less removes the line."""
        if not product_id:
            raise ValidationError("Product ID is required")
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("Quantity must be an integer")
        with self.database.session() as session:
            cart = self._load(session, key)
            if cart is None:
                raise NotFound("Cart not found")
            item = self._find_item(cart, product_id)
            if item is None:
                raise NotFound("Item not found in cart")
            if quantity <= 0:
                cart.items.remove(item)
            else:
                if quantity > item.product.stock:
                    raise ValidationError(
                        f"Insufficient stock for {item.product.name}. Available: {item.product.stock}"
                    )
                item.quantity = quantity
            self._recompute_total(cart)
            session.flush()
            logger.info(f"Set {product_id} to {quantity} in cart {key}")
            return self._view(key, cart)

    def remove_item(self, key: CartKey, product_id: str) -> bool:
        """Remove a line. Returns False, touching nothing, when there is no such line."""
        if not product_id:
            raise ValidationError("Product ID is required")
        with self.database.session() as session:
            cart = self._load(session, key)
            if cart is None:
                return False
            item = self._find_item(cart, product_id)
            if item is None:
                return False
            cart.items.remove(item)
            self._recompute_total(cart)
            logger.info(f"Removed {product_id} from cart {key}")
            return True

    def clear(self, key: CartKey) -> CartOut:
        with self.database.session() as session:
            cart = self._load(session, key)
            if cart is not None:
                session.delete(cart)
                logger.info(f"Cleared cart {key}")
        return CartOut(session_id=key.session_id, user_id=key.user_id)

    def merge(self, source: CartKey, target: CartKey) -> CartOut:
        """Move an anonymous cart into a user's cart, capping quantities at stock."""
        with self.database.session() as session:
            incoming = self._load(session, source)
            cart = self._load_or_create(session, target)
            if incoming is None or not incoming.items:
                if incoming is not None:
                    session.delete(incoming)
                return self._view(target, cart)

            moved = [(item.product, item.quantity) for item in incoming.items]
            session.delete(incoming)
            session.flush()
            for product, quantity in moved:
                item = self._find_item(cart, product.id)
                if item is None:
                    cart.items.append(CartItem(product=product, quantity=min(quantity, product.stock)))
                else:
                    item.quantity = min(item.quantity + quantity, product.stock)
            cart.items = [item for item in cart.items if item.quantity > 0]
            self._recompute_total(cart)
            session.flush()
            logger.info(f"Merged cart {source} into {target} ({len(moved)} lines)")
            return self._view(target, cart)

    def checkout(self, key: CartKey, customer_info: Optional[Dict[str, Any]] = None) -> OrderOut:
        """Reserve stock for every line, then drop the cart and return the order."""
        with self.database.session() as session:
            cart = self._load(session, key)
            if cart is None or not cart.items:
                raise ValidationError("Cart is empty")
            for item in cart.items:
                if item.product is None:
                    raise NotFound(f"Product {item.product_id} not found")
                if item.product.stock < item.quantity:
                    raise ValidationError(
                        f"Insufficient stock for {item.product.name}. Available: {item.product.stock}"
                    )
            view = self._view(key, cart)
            for item in cart.items:
                item.product.stock -= item.quantity
            session.delete(cart)
            order = OrderOut(
                id=_new_order_id(),
                session_id=key.session_id,
                user_id=key.user_id,
                items=view.items,
                total=view.total,
                customer_info=customer_info or {},
                status="confirmed",
                created_at=utcnow(),
            )
            logger.info(f"Order {order.id} confirmed for {key}: {view.item_count} items, total {view.total:.2f}")
            return order
