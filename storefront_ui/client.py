"""HTTP calls from the Streamlit app to the storefront API.

Every helper returns parsed JSON on success and ``{"error": message}`` on
failure, so the page code only has to check for the ``error`` key.
"""
from typing import Any, Dict, Optional

import httpx

from storefront.config import STOREFRONT_URL


class StorefrontClient:
    def __init__(self, base_url: str = STOREFRONT_URL, timeout: float = 30.0, transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.token: Optional[str] = None

    def make_request(self, path: str, method: str = "GET", data: Optional[dict] = None, params: Optional[dict] = None) -> Any:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
                response = client.request(method, path, json=data, params=params, headers=headers)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException:
            return {"error": f"Request timed out after {self.timeout} seconds"}
        except httpx.ConnectError:
            return {"error": "Connection failed - the storefront API may be down"}
        except httpx.HTTPStatusError as e:
            try:
                body = e.response.json()
            except ValueError:
                body = None
            message = body.get("error") if isinstance(body, dict) else None
            return {"error": message or f"HTTP {e.response.status_code}", "status": e.response.status_code}
        except httpx.HTTPError as e:
            return {"error": f"Request failed: {e}"}

    # auth

    def register(self, username: str, password: str) -> Dict[str, Any]:
        return self.make_request("/api/auth/register", "POST", {"username": username, "password": password})

    def login(self, username: str, password: str, session_id: str) -> Dict[str, Any]:
        result = self.make_request(
            "/api/auth/login", "POST", {"username": username, "password": password, "sessionId": session_id}
        )
        if "token" in result:
            self.token = result["token"]
        return result

    def logout(self) -> None:
        self.token = None

    # catalog

    def search_products(self, query: str = "", category: Optional[str] = None, limit: int = 30) -> Any:
        params = {"limit": limit}
        if query:
            params["search"] = query
        if category:
            params["category"] = category
        return self.make_request("/api/products", params=params)

    def categories(self) -> Dict[str, Any]:
        return self.make_request("/api/products/categories")

    # cart

    def get_cart(self, session_id: str) -> Dict[str, Any]:
        return self.make_request("/api/cart", params={"sessionId": session_id})

    def add_to_cart(self, session_id: str, product_id: str, quantity: int = 1) -> Dict[str, Any]:
        return self.make_request(
            "/api/cart", "POST", {"sessionId": session_id, "productId": product_id, "quantity": quantity}
        )

    def update_quantity(self, session_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
        return self.make_request(
            "/api/cart", "PUT", {"sessionId": session_id, "productId": product_id, "quantity": quantity}
        )

    def remove_from_cart(self, session_id: str, product_id: str) -> Dict[str, Any]:
        return self.make_request("/api/cart/remove", "POST", {"sessionId": session_id, "productId": product_id})

    def clear_cart(self, session_id: str) -> Dict[str, Any]:
        return self.make_request("/api/cart/clear", "POST", {"sessionId": session_id})

    def checkout(self, session_id: str, customer_info: Dict[str, Any]) -> Dict[str, Any]:
        return self.make_request("/api/cart/checkout", "POST", {"sessionId": session_id, "customerInfo": customer_info})

    # assistant

    def chat(self, session_id: str, message: str, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.make_request(
            "/api/ai-chat", "POST", {"message": message, "sessionId": session_id, "context": context or {}}
        )

    def reset_chat(self, session_id: str) -> Dict[str, Any]:
        return self.make_request("/api/ai-chat", "DELETE", params={"sessionId": session_id})

    # status

    def health(self) -> Dict[str, Any]:
        return self.make_request("/health")

    def warmup(self) -> Dict[str, Any]:
        return self.make_request("/api/warmup")


def format_price(value: Optional[float]) -> str:
    if value is None:
        return "Price N/A"
    return f"€{value:.2f}"
