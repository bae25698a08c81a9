import json
import unittest

import httpx

from storefront_ui.client import StorefrontClient, format_price


class StorefrontClientTestCase(unittest.TestCase):
    def setUp(self):
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/api/auth/login":
            return httpx.Response(200, json={"user": {"id": "u1", "username": "bob"}, "token": "tok"})
        if request.url.path == "/api/cart/remove":
            return httpx.Response(404, json={"error": "Item not found in cart"})
        if request.url.path == "/api/warmup":
            raise httpx.ConnectError("down", request=request)
        if request.url.path == "/api/products":
            return httpx.Response(200, json=[{"id": "p1", "name": "Dipirona 500mg"}])
        return httpx.Response(200, json={"ok": True})

    def client(self) -> StorefrontClient:
        return StorefrontClient("http://storefront/", transport=httpx.MockTransport(self.handler))

    def test_login_stores_token_for_later_calls(self):
        api = self.client()
        result = api.login("bob", "1234", "web-1")
        self.assertEqual(result["token"], "tok")
        self.assertEqual(json.loads(self.requests[0].content)["sessionId"], "web-1")

        api.get_cart("web-1")
        cart_request = self.requests[-1]
        self.assertEqual(cart_request.headers["Authorization"], "Bearer tok")
        self.assertEqual(cart_request.url.params["sessionId"], "web-1")

        api.logout()
        api.get_cart("web-1")
        self.assertNotIn("Authorization", self.requests[-1].headers)

    def test_errors_come_back_as_dicts(self):
        api = self.client()
        removed = api.remove_from_cart("web-1", "nope")
        self.assertEqual(removed, {"error": "Item not found in cart", "status": 404})
        self.assertIn("Connection failed", api.warmup()["error"])

    def test_search_sends_filters(self):
        api = self.client()
        products = api.search_products("dipirona", category="Analgésicos", limit=5)
        self.assertEqual(products[0]["name"], "Dipirona 500mg")
        params = self.requests[-1].url.params
        self.assertEqual((params["search"], params["category"], params["limit"]), ("dipirona", "Analgésicos", "5"))

    def test_format_price(self):
        self.assertEqual(format_price(8.5), "€8.50")
        self.assertEqual(format_price(None), "Price N/A")


if __name__ == "__main__":
    unittest.main()
