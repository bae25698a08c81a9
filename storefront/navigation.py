"""Storefront pages and how to reach them."""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from storefront.catalog import ProductCatalog
from storefront.errors import NotFound, ValidationError


@dataclass(frozen=True)
class Page:
    key: str
    path: str
    title: str
    description: str
    keywords: tuple = ()

    def to_json(self) -> Dict[str, Any]:
        return {"key": self.key, "path": self.path, "title": self.title, "description": self.description}


PAGES = [
    Page("home", "/", "Home", "Featured products and offers", ("home", "start", "início", "inicio")),
    Page("products", "/products", "Products", "Full catalog with search and filters",
         ("products", "catalog", "produtos", "medicines", "medicamentos")),
    Page("cart", "/cart", "Cart", "Items selected for purchase", ("cart", "basket", "carrinho")),
    Page("checkout", "/checkout", "Checkout", "Finish the purchase", ("checkout", "pay", "payment", "finalizar", "pagar")),
    Page("about", "/about", "About", "About the pharmacy", ("about", "sobre", "who")),
    Page("contact", "/contact", "Contact", "Phone, e-mail and address", ("contact", "contato", "phone", "address")),
]

FEATURES = [
    "Product search by name, description or manufacturer",
    "Category browsing",
    "Shopping cart for guests and registered users",
    "AI pharmacy assistant",
]

DESTINATIONS = ("home", "products", "category", "product", "search", "cart", "checkout", "about", "contact")


def page(key: str) -> Page:
    return next(p for p in PAGES if p.key == key)


def find_pages(query: str) -> List[Page]:
    query = (query or "").lower().strip()
    if not query:
        return []
    return [
        p for p in PAGES
        if query in p.title.lower() or query in p.description.lower() or any(k in query for k in p.keywords)
    ]


def resolve_destination(catalog: ProductCatalog, destination: str, target: Optional[str] = None) -> Dict[str, str]:
    """Turn a navigation request into ``{"url", "label"}``; raises when the target does not exist."""
    target = (target or "").strip()
    if destination == "product":
        product = catalog.resolve(target)
        if product is None:
            raise NotFound(f"Product '{target}' not found")
        return {"url": f"/products/{product.id}", "label": product.name}
    if destination == "category":
        match = next((c for c in catalog.categories() if c.lower() == target.lower()), None)
        if match is None:
            raise NotFound(f"Category '{target}' not found")
        return {"url": f"/products?category={quote(match)}", "label": match}
    if destination == "search":
        if not target:
            raise ValidationError("A search term is required")
        return {"url": f"/products?search={quote(target)}", "label": f"Search: {target}"}
    if destination not in DESTINATIONS:
        raise ValidationError(f"Unknown destination: {destination}")
    p = page(destination)
    return {"url": p.path, "label": p.title}
