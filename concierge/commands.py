"""The closed set of actions the assistant may take.

Every command declares its kind, and every result is tagged with the command
that produced it, so the UI can route product lists, cart updates and
navigation without guessing.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from storefront.carts import CartKey
from storefront.catalog import MAX_LIMIT, ProductFilter
from storefront.errors import NotFound, StorefrontError
from storefront.navigation import DESTINATIONS, resolve_destination
from storefront.schemas import ApiModel, CartOut, ProductOut
from storefront.services import Storefront

logger = logging.getLogger(__name__)

MAX_SHOWN_PRODUCTS = 15

STORE_INFO = {
    "hours": {
        "weekdays": "08:00-22:00",
        "saturday": "08:00-20:00",
        "sunday": "09:00-18:00",
    },
    "phone": "+55 11 4000-1234",
    "email": "atendimento@farmacia.example",
    "delivery": "Same-day delivery for orders placed before 16:00",
}

PAYMENT_METHODS = ("credit", "debit", "pix", "boleto")

PROMOTIONS = [
    {"id": "first-order", "title": "First order", "description": "15% off your first order", "discount": 15, "code": "PRIMEIRACOMPRA"},
    {"id": "vitamins", "title": "Vitamins", "description": "Take 3, pay 2 on selected vitamins", "discount": 33, "code": None},
    {"id": "free-shipping", "title": "Free shipping", "description": "Free shipping on orders over €50", "discount": 0, "code": None},
    {"id": "health", "title": "Health discount", "description": "20% off blood pressure medication", "discount": 20, "code": "SAUDE20"},
]

PRESCRIPTION_INFO = {
    "uploadMethods": ["whatsapp", "email", "website"],
    "contacts": {"whatsapp": "+55 11 98765-4321", "email": "receitas@farmacia.example"},
    "requirements": {
        "simple": "A clear photo of the prescription, with the doctor's stamp and signature",
        "controlled": "The original prescription and a photo ID on delivery",
    },
    "validity": {"simple": "30 days", "controlled": "depends on the medicine"},
}


class CommandKind(str, Enum):
    DISPLAY = "display"
    CART = "cart"
    NAVIGATION = "navigation"
    INFO = "info"


class CommandResult(ApiModel):
    tool: str
    kind: CommandKind
    success: bool
    message: str
    data: Dict[str, Any] = {}

    def for_model(self) -> Dict[str, Any]:
        """Compact payload handed back to the model as the function response."""
        return {"success": self.success, "message": self.message, "data": self.data}


@dataclass
class CommandContext:
    storefront: Storefront
    cart_key: CartKey


Handler = Callable[[CommandContext, Any], Tuple[str, Dict[str, Any]]]


@dataclass(frozen=True)
class Command:
    name: str
    kind: CommandKind
    description: str
    args_model: Type[BaseModel]
    parameters: Dict[str, Any]
    handler: Handler

    def declaration(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "parameters": self.parameters}


# argument models

class NoArgs(BaseModel):
    pass


class SearchProductsArgs(BaseModel):
    query: str = Field(..., min_length=1, max_length=200)
    category: Optional[str] = None
    limit: int = Field(15, ge=1, le=50)


class ShowProductsArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_ids: List[str] = Field(..., alias="productIds", min_length=1, max_length=MAX_SHOWN_PRODUCTS)
    title: Optional[str] = None
    query: Optional[str] = None


class ProductArgs(BaseModel):
    product: str = Field(..., min_length=1)


class AddToCartArgs(BaseModel):
    product: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1, le=100)


class UpdateQuantityArgs(BaseModel):
    product: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=0, le=100)


class NavigateArgs(BaseModel):
    destination: Literal[DESTINATIONS]
    target: Optional[str] = None


class BudgetArgs(BaseModel):
    budget: float = Field(..., gt=0)
    category: Optional[str] = None
    need: Optional[str] = Field(None, max_length=200)
    limit: int = Field(10, ge=1, le=20)


class ComparePricesArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product: str = Field(..., min_length=1, max_length=200)
    max_results: int = Field(5, alias="maxResults", ge=1, le=10)


class OptimizeCartArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    budget: float = Field(..., gt=0)
    prioritize_essentials: bool = Field(True, alias="prioritizeEssentials")


class PlaceOrderArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_method: Literal[PAYMENT_METHODS] = Field(..., alias="paymentMethod")
    shipping_zip_code: Optional[str] = Field(None, alias="shippingZipCode", max_length=20)


class PharmacistArgs(BaseModel):
    question: str = Field(..., min_length=1, max_length=1000)
    urgency: Literal["low", "medium", "high"] = "medium"


# helpers

def _price(value: float) -> str:
    return f"€{value:.2f}"


def _product_line(product: ProductOut) -> str:
    line = f"- {product.name} ({product.manufacturer}) - {_price(product.price)}"
    if product.prescription:
        line += " [prescription required]"
    if product.stock <= 0:
        line += " [out of stock]"
    return line


def _cart_summary(cart: CartOut) -> str:
    if not cart.items:
        return "Your cart is empty."
    lines = [f"- {line.quantity}x {line.name} - {_price(line.subtotal)}" for line in cart.items]
    return "\n".join(["Your cart:"] + lines + [f"Total: {_price(cart.total)}"])


def _resolve(ctx: CommandContext, identifier: str) -> ProductOut:
    product = ctx.storefront.catalog.resolve(identifier)
    if product is None:
        raise NotFound(f"Product '{identifier}' not found. Try searching for it first.")
    return product


# handlers

def search_products(ctx: CommandContext, args: SearchProductsArgs):
    products = ctx.storefront.catalog.rank(args.query, category=args.category, limit=args.limit)
    title = f"Results for \"{args.query}\""
    data = {
        "products": [p.to_json() for p in products],
        "total": len(products),
        "query": args.query,
        "title": title,
    }
    if not products:
        return f"No products found for \"{args.query}\".", data
    return "\n".join([f"Found {len(products)} products for \"{args.query}\":"] + [_product_line(p) for p in products]), data


def show_products(ctx: CommandContext, args: ShowProductsArgs):
    products = []
    for product_id in dict.fromkeys(args.product_ids):
        product = ctx.storefront.catalog.find(product_id)
        if product is not None:
            products.append(product)
    if not products:
        raise NotFound("None of the requested products were found")
    title = args.title or "Recommended products"
    data = {
        "products": [p.to_json() for p in products],
        "total": len(products),
        "query": args.query,
        "title": title,
    }
    return f"Showing {len(products)} products: {', '.join(p.name for p in products)}", data


def get_product_details(ctx: CommandContext, args: ProductArgs):
    product = _resolve(ctx, args.product)
    message = (
        f"{product.name} by {product.manufacturer}: {product.description}. "
        f"Price {_price(product.price)}, {product.stock} in stock, category {product.category}."
    )
    if product.prescription:
        message += " Requires a medical prescription."
    return message, {"product": product.to_json()}


def list_categories(ctx: CommandContext, args: NoArgs):
    counts = ctx.storefront.catalog.category_counts()
    lines = [f"- {category} ({count})" for category, count in counts.items()]
    return "\n".join(["Available categories:"] + lines), {
        "categories": [{"name": c, "count": n} for c, n in counts.items()]
    }


def add_to_cart(ctx: CommandContext, args: AddToCartArgs):
    product = _resolve(ctx, args.product)
    cart = ctx.storefront.carts.add_item(ctx.cart_key, product.id, args.quantity)
    message = f"Added {args.quantity}x {product.name} to your cart. Cart total: {_price(cart.total)}"
    if product.prescription:
        message += f". Note: {product.name} requires a prescription"
    return message, {"product": product.to_json(), "quantity": args.quantity, "cart": cart.to_json()}


def remove_from_cart(ctx: CommandContext, args: ProductArgs):
    product = _resolve(ctx, args.product)
    if not ctx.storefront.carts.remove_item(ctx.cart_key, product.id):
        raise NotFound(f"{product.name} is not in your cart")
    cart = ctx.storefront.carts.get_cart(ctx.cart_key)
    return f"Removed {product.name} from your cart.", {"removedProductId": product.id, "cart": cart.to_json()}


def update_cart_quantity(ctx: CommandContext, args: UpdateQuantityArgs):
    product = _resolve(ctx, args.product)
    cart = ctx.storefront.carts.set_quantity(ctx.cart_key, product.id, args.quantity)
    if args.quantity == 0:
        message = f"Removed {product.name} from your cart."
    else:
        message = f"Updated {product.name} to {args.quantity} in your cart."
    return message, {"product": product.to_json(), "quantity": args.quantity, "cart": cart.to_json()}


def view_cart(ctx: CommandContext, args: NoArgs):
    cart = ctx.storefront.carts.get_cart(ctx.cart_key)
    return _cart_summary(cart), {"cart": cart.to_json()}


def clear_cart(ctx: CommandContext, args: NoArgs):
    cart = ctx.storefront.carts.clear(ctx.cart_key)
    return "Your cart has been emptied.", {"cart": cart.to_json()}


def navigate(ctx: CommandContext, args: NavigateArgs):
    if args.destination == "checkout" and not ctx.storefront.carts.get_cart(ctx.cart_key).items:
        raise NotFound("Your cart is empty, add something before checking out")
    target = resolve_destination(ctx.storefront.catalog, args.destination, args.target)
    return f"Taking you to {target['label']}.", {"destination": args.destination, **target}


def store_info(ctx: CommandContext, args: NoArgs):
    hours = STORE_INFO["hours"]
    message = (
        f"We are open Monday to Friday {hours['weekdays']}, Saturday {hours['saturday']} "
        f"and Sunday {hours['sunday']}. Phone {STORE_INFO['phone']}, e-mail {STORE_INFO['email']}. "
        f"{STORE_INFO['delivery']}."
    )
    return message, dict(STORE_INFO)


def suggest_within_budget(ctx: CommandContext, args: BudgetArgs):
    if args.need:
        candidates = ctx.storefront.catalog.rank(args.need, category=args.category, limit=MAX_LIMIT)
    else:
        candidates = ctx.storefront.catalog.search(ProductFilter.build(category=args.category))
    products = sorted((p for p in candidates if p.price <= args.budget), key=lambda p: p.price)[: args.limit]
    title = f"Within {_price(args.budget)}"
    data = {
        "products": [p.to_json() for p in products],
        "total": len(products),
        "query": args.need,
        "title": title,
        "budget": args.budget,
    }
    scope = "".join([
        f" in {args.category}" if args.category else "",
        f" for \"{args.need}\"" if args.need else "",
    ])
    if not products:
        return f"No products{scope} fit a budget of {_price(args.budget)}.", data
    header = f"Cheapest options{scope} within {_price(args.budget)}:"
    return "\n".join([header] + [_product_line(p) for p in products]), data


def compare_prices(ctx: CommandContext, args: ComparePricesArgs):
    matches = ctx.storefront.catalog.search(ProductFilter.build(term=args.product))
    if not matches:
        raise NotFound(f"No products similar to '{args.product}' to compare")
    products = sorted(matches, key=lambda p: p.price)[: args.max_results]
    prices = [p.price for p in products]
    stats = {
        "min": min(prices),
        "max": max(prices),
        "average": round(sum(prices) / len(prices), 2),
        "count": len(prices),
    }
    data = {
        "products": [p.to_json() for p in products],
        "total": len(products),
        "query": args.product,
        "title": f"Price comparison: {args.product}",
        "priceStats": stats,
    }
    header = (
        f"Prices for \"{args.product}\" range from {_price(stats['min'])} to {_price(stats['max'])} "
        f"(average {_price(stats['average'])}):"
    )
    return "\n".join([header] + [_product_line(p) for p in products]), data


def optimize_cart_for_budget(ctx: CommandContext, args: OptimizeCartArgs):
    """Suggest which lines to keep to stay within a budget. The cart itself is not changed."""
    cart = ctx.storefront.carts.get_cart(ctx.cart_key)
    if not cart.items:
        raise NotFound("Your cart is empty, add products before planning a budget")
    data: Dict[str, Any] = {"budget": args.budget, "originalTotal": cart.total, "keep": [], "drop": [], "suggestions": []}
    if cart.total <= args.budget:
        data["optimizedTotal"] = cart.total
        return f"Your cart already fits the budget: {_price(cart.total)} of {_price(args.budget)}.", data

    if args.prioritize_essentials:
        # prescription medicines first, then cheapest first
        lines = sorted(cart.items, key=lambda line: (not line.prescription, line.price))
    else:
        lines = sorted(cart.items, key=lambda line: line.price)

    spent = 0.0
    for line in lines:
        # epsilon absorbs float rounding, e.g. 3 x 0.1 against a 0.3 budget
        affordable = min(line.quantity, int((args.budget - spent + 1e-9) // line.price)) if line.price else line.quantity
        if affordable > 0:
            data["keep"].append({"productId": line.product_id, "name": line.name, "quantity": affordable})
            spent += affordable * line.price
        if affordable < line.quantity:
            data["drop"].append({"productId": line.product_id, "name": line.name, "quantity": line.quantity - affordable})
    spent = round(spent, 2)
    data["optimizedTotal"] = spent

    remaining = max(args.budget - spent, 0.0)
    in_cart = {line.product_id for line in cart.items}
    cheaper = [
        p for p in ctx.storefront.catalog.search(ProductFilter.build(max_price=remaining))
        if p.id not in in_cart and p.stock > 0
    ]
    data["suggestions"] = [p.to_json() for p in sorted(cheaper, key=lambda p: p.price)[:5]]

    lines_out = [
        f"To fit {_price(args.budget)} (cart total {_price(cart.total)}), keep:",
        *[f"- {item['quantity']}x {item['name']}" for item in data["keep"]],
        "Remove:",
        *[f"- {item['quantity']}x {item['name']}" for item in data["drop"]],
        f"New total: {_price(spent)}, saving {_price(cart.total - spent)}.",
    ]
    return "\n".join(lines_out), data


def go_to_checkout(ctx: CommandContext, args: NoArgs):
    cart = ctx.storefront.carts.get_cart(ctx.cart_key)
    if not cart.items:
        raise NotFound("Your cart is empty, add something before checking out")
    target = resolve_destination(ctx.storefront.catalog, "checkout", None)
    return f"Taking you to checkout. Total: {_price(cart.total)}.", {"destination": "checkout", **target}


def place_order(ctx: CommandContext, args: PlaceOrderArgs):
    customer_info: Dict[str, Any] = {"paymentMethod": args.payment_method}
    if args.shipping_zip_code:
        customer_info["shippingZipCode"] = args.shipping_zip_code
    order = ctx.storefront.carts.checkout(ctx.cart_key, customer_info)
    cart = ctx.storefront.carts.get_cart(ctx.cart_key)
    message = f"Order {order.id} confirmed: {len(order.items)} products, total {_price(order.total)}."
    if any(line.prescription for line in order.items):
        message += " Please send the prescription for the prescription-only items."
    return message, {"order": order.to_json(), "cart": cart.to_json()}


def show_promotions(ctx: CommandContext, args: NoArgs):
    lines = []
    for promo in PROMOTIONS:
        line = f"- {promo['title']}: {promo['description']}"
        if promo["code"]:
            line += f" (code {promo['code']})"
        lines.append(line)
    return "\n".join(["Current promotions:"] + lines), {"promotions": PROMOTIONS}


def prescription_info(ctx: CommandContext, args: NoArgs):
    contacts = PRESCRIPTION_INFO["contacts"]
    requirements = PRESCRIPTION_INFO["requirements"]
    message = (
        f"Send your prescription by WhatsApp ({contacts['whatsapp']}), by e-mail ({contacts['email']}) "
        f"or upload it at checkout. {requirements['simple']}. "
        f"Controlled medicines need {requirements['controlled'].lower()}. "
        f"Simple prescriptions are valid for {PRESCRIPTION_INFO['validity']['simple']}."
    )
    return message, dict(PRESCRIPTION_INFO)


def contact_pharmacist(ctx: CommandContext, args: PharmacistArgs):
    logger.info(f"Pharmacist contact requested ({args.urgency}) for {ctx.cart_key}")
    if args.urgency == "high":
        message = (
            f"For urgent questions call our pharmacist now on {STORE_INFO['phone']}. "
            "If this is a medical emergency, call your local emergency number."
        )
    else:
        message = (
            f"Our pharmacist will answer your question. Call {STORE_INFO['phone']} or write to "
            f"{STORE_INFO['email']} during opening hours ({STORE_INFO['hours']['weekdays']} on weekdays)."
        )
    data = {
        "question": args.question,
        "urgency": args.urgency,
        "phone": STORE_INFO["phone"],
        "email": STORE_INFO["email"],
    }
    return message, data


def _object(properties: Dict[str, Any], required: Optional[List[str]] = None) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "OBJECT", "properties": properties}
    if required:
        schema["required"] = required
    return schema


_PRODUCT_REF = {"type": "STRING", "description": "Product id, or the product name as the customer said it"}

COMMANDS = [
    Command(
        name="search_products",
        kind=CommandKind.DISPLAY,
        description="Search the catalog by product name, ingredient, manufacturer or symptom and show the results to the customer.",
        args_model=SearchProductsArgs,
        parameters=_object(
            {
                "query": {"type": "STRING", "description": "Search terms, e.g. 'dipirona' or 'headache'"},
                "category": {"type": "STRING", "description": "Optional exact category name"},
                "limit": {"type": "INTEGER", "description": "Maximum results, 1-50"},
            },
            ["query"],
        ),
        handler=search_products,
    ),
    Command(
        name="show_products",
        kind=CommandKind.DISPLAY,
        description="Show specific products, by id, in the product panel, e.g. your recommendations.",
        args_model=ShowProductsArgs,
        parameters=_object(
            {
                "productIds": {"type": "ARRAY", "items": {"type": "STRING"}, "description": "1 to 15 product ids"},
                "title": {"type": "STRING", "description": "Panel title"},
                "query": {"type": "STRING", "description": "What the customer asked for"},
            },
            ["productIds"],
        ),
        handler=show_products,
    ),
    Command(
        name="get_product_details",
        kind=CommandKind.INFO,
        description="Get price, stock, manufacturer and prescription status of one product.",
        args_model=ProductArgs,
        parameters=_object({"product": _PRODUCT_REF}, ["product"]),
        handler=get_product_details,
    ),
    Command(
        name="list_categories",
        kind=CommandKind.INFO,
        description="List the product categories and how many products each has.",
        args_model=NoArgs,
        parameters=_object({}),
        handler=list_categories,
    ),
    Command(
        name="suggest_within_budget",
        kind=CommandKind.DISPLAY,
        description="Show the cheapest products that fit a budget, optionally for a category or a symptom/need.",
        args_model=BudgetArgs,
        parameters=_object(
            {
                "budget": {"type": "NUMBER", "description": "Maximum price per product in euros"},
                "category": {"type": "STRING", "description": "Optional exact category name"},
                "need": {"type": "STRING", "description": "Optional symptom or need, e.g. 'headache'"},
                "limit": {"type": "INTEGER", "description": "Maximum suggestions, 1-20"},
            },
            ["budget"],
        ),
        handler=suggest_within_budget,
    ),
    Command(
        name="compare_prices",
        kind=CommandKind.DISPLAY,
        description="Compare prices of products matching a name or ingredient, cheapest first.",
        args_model=ComparePricesArgs,
        parameters=_object(
            {
                "product": {"type": "STRING", "description": "Product name or ingredient"},
                "maxResults": {"type": "INTEGER", "description": "Products to compare, 1-10"},
            },
            ["product"],
        ),
        handler=compare_prices,
    ),
    Command(
        name="optimize_cart_for_budget",
        kind=CommandKind.CART,
        description="Work out which cart items to keep to stay within a budget. Does not change the cart.",
        args_model=OptimizeCartArgs,
        parameters=_object(
            {
                "budget": {"type": "NUMBER", "description": "Total budget in euros"},
                "prioritizeEssentials": {"type": "BOOLEAN", "description": "Keep prescription medicines first"},
            },
            ["budget"],
        ),
        handler=optimize_cart_for_budget,
    ),
    Command(
        name="add_to_cart",
        kind=CommandKind.CART,
        description="Add a product to the customer's cart.",
        args_model=AddToCartArgs,
        parameters=_object(
            {"product": _PRODUCT_REF, "quantity": {"type": "INTEGER", "description": "Units to add, default 1"}},
            ["product"],
        ),
        handler=add_to_cart,
    ),
    Command(
        name="remove_from_cart",
        kind=CommandKind.CART,
        description="Remove a product from the customer's cart.",
        args_model=ProductArgs,
        parameters=_object({"product": _PRODUCT_REF}, ["product"]),
        handler=remove_from_cart,
    ),
    Command(
        name="update_cart_quantity",
        kind=CommandKind.CART,
        description="Set the quantity of a product already in the cart; 0 removes it.",
        args_model=UpdateQuantityArgs,
        parameters=_object(
            {"product": _PRODUCT_REF, "quantity": {"type": "INTEGER", "description": "New quantity"}},
            ["product", "quantity"],
        ),
        handler=update_cart_quantity,
    ),
    Command(
        name="view_cart",
        kind=CommandKind.CART,
        description="Show what is in the customer's cart and the total.",
        args_model=NoArgs,
        parameters=_object({}),
        handler=view_cart,
    ),
    Command(
        name="clear_cart",
        kind=CommandKind.CART,
        description="Remove everything from the customer's cart.",
        args_model=NoArgs,
        parameters=_object({}),
        handler=clear_cart,
    ),
    Command(
        name="navigate",
        kind=CommandKind.NAVIGATION,
        description="Send the customer to a page of the store.",
        args_model=NavigateArgs,
        parameters=_object(
            {
                "destination": {"type": "STRING", "enum": list(DESTINATIONS)},
                "target": {"type": "STRING", "description": "Product, category or search term for those destinations"},
            },
            ["destination"],
        ),
        handler=navigate,
    ),
    Command(
        name="go_to_checkout",
        kind=CommandKind.NAVIGATION,
        description="Send the customer to checkout when the cart has items.",
        args_model=NoArgs,
        parameters=_object({}),
        handler=go_to_checkout,
    ),
    Command(
        name="place_order",
        kind=CommandKind.CART,
        description="Place the order for everything in the cart. Only call this after the customer confirms.",
        args_model=PlaceOrderArgs,
        parameters=_object(
            {
                "paymentMethod": {"type": "STRING", "enum": list(PAYMENT_METHODS)},
                "shippingZipCode": {"type": "STRING", "description": "Delivery postal code"},
            },
            ["paymentMethod"],
        ),
        handler=place_order,
    ),
    Command(
        name="store_info",
        kind=CommandKind.INFO,
        description="Opening hours, contact details and delivery information.",
        args_model=NoArgs,
        parameters=_object({}),
        handler=store_info,
    ),
    Command(
        name="show_promotions",
        kind=CommandKind.INFO,
        description="Current promotions and discount codes.",
        args_model=NoArgs,
        parameters=_object({}),
        handler=show_promotions,
    ),
    Command(
        name="prescription_info",
        kind=CommandKind.INFO,
        description="How to send a medical prescription and what controlled medicines require.",
        args_model=NoArgs,
        parameters=_object({}),
        handler=prescription_info,
    ),
    Command(
        name="contact_pharmacist",
        kind=CommandKind.INFO,
        description="Put the customer in touch with a pharmacist for health questions you should not answer.",
        args_model=PharmacistArgs,
        parameters=_object(
            {
                "question": {"type": "STRING", "description": "The customer's question"},
                "urgency": {"type": "STRING", "enum": ["low", "medium", "high"]},
            },
            ["question"],
        ),
        handler=contact_pharmacist,
    ),
]

# commands whose success means the cart changed
CART_MUTATIONS = frozenset({"add_to_cart", "remove_from_cart", "update_cart_quantity", "clear_cart", "place_order"})


class CommandCatalog:
    def __init__(self, commands: List[Command]):
        self._commands = {command.name: command for command in commands}

    def __contains__(self, name: str) -> bool:
        return name in self._commands

    @property
    def names(self) -> List[str]:
        return list(self._commands)

    def get(self, name: str) -> Optional[Command]:
        return self._commands.get(name)

    def declarations(self) -> List[Dict[str, Any]]:
        return [command.declaration() for command in self._commands.values()]

    def tools(self) -> List[Dict[str, Any]]:
        return [{"functionDeclarations": self.declarations()}]

    def execute(self, name: str, raw_args: Optional[Dict[str, Any]], ctx: CommandContext) -> CommandResult:
        """Run a command. Failures come back as unsuccessful results, never as exceptions."""
        command = self._commands.get(name)
        if command is None:
            logger.warning(f"Model requested unknown tool {name}")
            return CommandResult(tool=name, kind=CommandKind.INFO, success=False, message=f"Unknown tool: {name}")

        try:
            args = command.args_model.model_validate(raw_args or {})
        except PydanticValidationError as e:
            problems = ", ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
            logger.warning(f"Invalid arguments for {name}: {problems}")
            return CommandResult(
                tool=name, kind=command.kind, success=False, message=f"Invalid arguments for {name}: {problems}"
            )

        try:
            message, data = command.handler(ctx, args)
        except StorefrontError as e:
            logger.info(f"Tool {name} failed: {e.message}")
            return CommandResult(tool=name, kind=command.kind, success=False, message=e.message)
        except Exception as e:
            logger.exception(f"Tool {name} crashed for {ctx.cart_key}: {e}")
            return CommandResult(
                tool=name, kind=command.kind, success=False, message=f"Sorry, {name} failed. Please try again."
            )

        logger.info(f"Tool {name} executed for {ctx.cart_key}")
        return CommandResult(tool=name, kind=command.kind, success=True, message=message, data=data)


DEFAULT_COMMANDS = CommandCatalog(COMMANDS)
