import json
import unittest
from datetime import timedelta
from unittest import mock

import httpx
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError

from concierge.agent import PharmacyAgent, route_results
from concierge.commands import DEFAULT_COMMANDS, CommandContext, CommandKind, CommandResult
from concierge.intents import IntentParser
from concierge.llm import GeminiClient, LLMError
from storefront.carts import CartKey
from tests.support import make_storefront, product_named


def gemini_text(text):
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}, "finishReason": "STOP"}]}


def gemini_calls(*calls):
    parts = [{"functionCall": {"name": name, "args": args}} for name, args in calls]
    return {"candidates": [{"content": {"role": "model", "parts": parts}, "finishReason": "STOP"}]}


class ScriptedGemini:
    """Serves canned generateContent responses in order and records the requests."""

    def __init__(self, *responses, status_code=200):
        self.responses = list(responses)
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": {"message": "boom"}})
        body = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return httpx.Response(200, json=body)

    def client(self) -> GeminiClient:
        return GeminiClient(api_key="test-key", transport=httpx.MockTransport(self))

    def body(self, index):
        return json.loads(self.requests[index].content)


class RouteResultsTestCase(unittest.TestCase):
    def display(self, tool="search_products", title="Results", success=True):
        return CommandResult(
            tool=tool, kind=CommandKind.DISPLAY, success=success, message="found",
            data={"title": title, "query": "dor", "products": [{"id": "p1", "name": "Dipirona 500mg"}]},
        )

    def cart(self, tool="add_to_cart", success=True):
        return CommandResult(tool=tool, kind=CommandKind.CART, success=success, message="added",
                             data={"cart": {"items": [], "total": 0}})

    def test_cart_result_after_display_keeps_overlay(self):
        overlay, navigation, cart_changed = route_results([self.display(), self.cart()])
        self.assertEqual(overlay.tool, "search_products")
        self.assertEqual(overlay.title, "Results")
        self.assertEqual(overlay.products[0]["name"], "Dipirona 500mg")
        self.assertIsNone(navigation)
        self.assertTrue(cart_changed)

    def test_last_successful_display_wins(self):
        results = [self.display(title="First"), self.display(tool="show_products", title="Second"),
                   self.display(title="Failed", success=False)]
        overlay, _, cart_changed = route_results(results)
        self.assertEqual((overlay.tool, overlay.title), ("show_products", "Second"))
        self.assertFalse(cart_changed)

    def test_reads_and_failures_do_not_flag_cart_change(self):
        _, _, changed = route_results([self.cart(tool="view_cart"), self.cart(success=False)])
        self.assertFalse(changed)

    def test_navigation_only_from_navigation_results(self):
        nav = CommandResult(tool="navigate", kind=CommandKind.NAVIGATION, success=True, message="ok",
                            data={"destination": "cart", "url": "/cart", "label": "Cart"})
        overlay, navigation, _ = route_results([nav, self.cart()])
        self.assertIsNone(overlay)
        self.assertEqual(navigation.url, "/cart")


class CommandCatalogTestCase(unittest.TestCase):
    def setUp(self):
        self.storefront = make_storefront()
        self.ctx = CommandContext(storefront=self.storefront, cart_key=CartKey.for_session("tools"))

    def tearDown(self):
        self.storefront.close()

    def test_declarations_cover_every_command(self):
        declarations = DEFAULT_COMMANDS.declarations()
        self.assertEqual([d["name"] for d in declarations], DEFAULT_COMMANDS.names)
        for declaration in declarations:
            self.assertEqual(declaration["parameters"]["type"], "OBJECT")
        self.assertEqual(DEFAULT_COMMANDS.get("show_products").kind, CommandKind.DISPLAY)
        self.assertEqual(DEFAULT_COMMANDS.get("add_to_cart").kind, CommandKind.CART)
        self.assertIn("navigate", DEFAULT_COMMANDS)
        self.assertNotIn("drop_tables", DEFAULT_COMMANDS)

    def test_unknown_command_and_bad_arguments_fail_softly(self):
        result = DEFAULT_COMMANDS.execute("drop_tables", {}, self.ctx)
        self.assertFalse(result.success)
        self.assertEqual(result.tool, "drop_tables")

        result = DEFAULT_COMMANDS.execute("add_to_cart", {"product": "dipirona", "quantity": 0}, self.ctx)
        self.assertFalse(result.success)
        self.assertEqual(result.kind, CommandKind.CART)
        self.assertEqual(self.storefront.carts.get_cart(self.ctx.cart_key).items, [])

        result = DEFAULT_COMMANDS.execute("search_products", None, self.ctx)
        self.assertFalse(result.success)

    def test_unexpected_errors_become_failed_results(self):
        race = IntegrityError("UPDATE products", {}, Exception("CHECK constraint failed: stock >= 0"))
        with mock.patch.object(self.storefront.carts, "add_item", side_effect=race):
            with self.assertLogs("concierge.commands", level="ERROR"):
                result = DEFAULT_COMMANDS.execute("add_to_cart", {"product": "dipirona"}, self.ctx)
        self.assertFalse(result.success)
        self.assertEqual(result.kind, CommandKind.CART)
        self.assertIn("add_to_cart failed", result.message)

    # ---------- Budget ----------

    def test_suggest_within_budget(self):
        result = DEFAULT_COMMANDS.execute("suggest_within_budget", {"budget": 10, "need": "analgésico"}, self.ctx)
        self.assertTrue(result.success)
        self.assertEqual(result.kind, CommandKind.DISPLAY)
        self.assertEqual([p["name"] for p in result.data["products"]], ["Paracetamol 750mg", "Dipirona 500mg"])

        result = DEFAULT_COMMANDS.execute("suggest_within_budget", {"budget": 20, "category": "Vitaminas"}, self.ctx)
        self.assertEqual([p["name"] for p in result.data["products"]], ["Complexo B"])

        result = DEFAULT_COMMANDS.execute("suggest_within_budget", {"budget": 0.5}, self.ctx)
        self.assertTrue(result.success)
        self.assertEqual(result.data["products"], [])
        self.assertFalse(DEFAULT_COMMANDS.execute("suggest_within_budget", {"budget": -5}, self.ctx).success)

    def test_compare_prices(self):
        result = DEFAULT_COMMANDS.execute("compare_prices", {"product": "paracetamol"}, self.ctx)
        self.assertEqual([p["name"] for p in result.data["products"]], ["Paracetamol 750mg", "Paracetamol Gotas"])
        stats = result.data["priceStats"]
        self.assertEqual((stats["min"], stats["max"], stats["count"]), (6.8, 12.9, 2))
        self.assertAlmostEqual(stats["average"], 9.85)
        self.assertFalse(DEFAULT_COMMANDS.execute("compare_prices", {"product": "unobtainium"}, self.ctx).success)

    def test_optimize_cart_for_budget_keeps_prescription_items_first(self):
        self.assertFalse(DEFAULT_COMMANDS.execute("optimize_cart_for_budget", {"budget": 40}, self.ctx).success)
        DEFAULT_COMMANDS.execute("add_to_cart", {"product": "Vitamina C 1g", "quantity": 2}, self.ctx)
        DEFAULT_COMMANDS.execute("add_to_cart", {"product": "amoxicilina"}, self.ctx)

        result = DEFAULT_COMMANDS.execute("optimize_cart_for_budget", {"budget": 40}, self.ctx)
        self.assertTrue(result.success)
        self.assertEqual([(i["name"], i["quantity"]) for i in result.data["keep"]], [("Amoxicilina 500mg", 1)])
        self.assertEqual([(i["name"], i["quantity"]) for i in result.data["drop"]], [("Vitamina C 1g", 2)])
        self.assertAlmostEqual(result.data["optimizedTotal"], 25.9)
        self.assertTrue(all(p["price"] <= 40 - 25.9 for p in result.data["suggestions"]))
        self.assertEqual(len(self.storefront.carts.get_cart(self.ctx.cart_key).items), 2)

        fits = DEFAULT_COMMANDS.execute("optimize_cart_for_budget", {"budget": 100}, self.ctx)
        self.assertEqual(fits.data["drop"], [])
        self.assertIn("already fits", fits.message)

    # ---------- Checkout ----------

    def test_go_to_checkout_needs_items(self):
        self.assertFalse(DEFAULT_COMMANDS.execute("go_to_checkout", {}, self.ctx).success)
        DEFAULT_COMMANDS.execute("add_to_cart", {"product": "dipirona"}, self.ctx)
        result = DEFAULT_COMMANDS.execute("go_to_checkout", {}, self.ctx)
        self.assertTrue(result.success)
        self.assertEqual(result.kind, CommandKind.NAVIGATION)
        self.assertEqual(result.data["url"], "/checkout")

    def test_place_order(self):
        empty = DEFAULT_COMMANDS.execute("place_order", {"paymentMethod": "pix"}, self.ctx)
        self.assertFalse(empty.success)
        self.assertEqual(empty.message, "Cart is empty")

        DEFAULT_COMMANDS.execute("add_to_cart", {"product": "dipirona", "quantity": 2}, self.ctx)
        self.assertFalse(DEFAULT_COMMANDS.execute("place_order", {"paymentMethod": "cash"}, self.ctx).success)

        result = DEFAULT_COMMANDS.execute(
            "place_order", {"paymentMethod": "credit", "shippingZipCode": "01310-100"}, self.ctx
        )
        self.assertTrue(result.success)
        order = result.data["order"]
        self.assertEqual(order["customerInfo"], {"paymentMethod": "credit", "shippingZipCode": "01310-100"})
        self.assertAlmostEqual(order["total"], 17.0)
        self.assertEqual(result.data["cart"]["items"], [])
        self.assertEqual(product_named(self.storefront, "Dipirona 500mg").stock, 148)

        _, _, cart_changed = route_results([result])
        self.assertTrue(cart_changed)

    # ---------- Catalog, cart and info commands ----------

    def test_cart_commands(self):
        added = DEFAULT_COMMANDS.execute("add_to_cart", {"product": "Dipirona", "quantity": 2}, self.ctx)
        self.assertTrue(added.success)
        self.assertAlmostEqual(added.data["cart"]["total"], 17.0)

        updated = DEFAULT_COMMANDS.execute("update_cart_quantity", {"product": "dipirona", "quantity": 3}, self.ctx)
        self.assertEqual(updated.data["cart"]["items"][0]["quantity"], 3)

        missing = DEFAULT_COMMANDS.execute("remove_from_cart", {"product": "paracetamol"}, self.ctx)
        self.assertFalse(missing.success)
        self.assertIn("not in your cart", missing.message)

        viewed = DEFAULT_COMMANDS.execute("view_cart", {}, self.ctx)
        self.assertIn("3x Dipirona 500mg", viewed.message)

        cleared = DEFAULT_COMMANDS.execute("clear_cart", {}, self.ctx)
        self.assertEqual(cleared.data["cart"]["items"], [])

    def test_prescription_products_are_flagged(self):
        result = DEFAULT_COMMANDS.execute("add_to_cart", {"product": "amoxicilina"}, self.ctx)
        self.assertTrue(result.success)
        self.assertIn("prescription", result.message)
        details = DEFAULT_COMMANDS.execute("get_product_details", {"product": "amoxicilina"}, self.ctx)
        self.assertIn("prescription", details.message)

    def test_show_products_skips_unknown_ids(self):
        dipirona = product_named(self.storefront, "Dipirona 500mg")
        result = DEFAULT_COMMANDS.execute(
            "show_products", {"productIds": [dipirona.id, "missing", dipirona.id], "title": "For pain"}, self.ctx
        )
        self.assertTrue(result.success)
        self.assertEqual(result.data["title"], "For pain")
        self.assertEqual([p["id"] for p in result.data["products"]], [dipirona.id])

        self.assertFalse(DEFAULT_COMMANDS.execute("show_products", {"productIds": ["missing"]}, self.ctx).success)
        self.assertFalse(DEFAULT_COMMANDS.execute("show_products", {"productIds": ["x"] * 16}, self.ctx).success)

    def test_navigate(self):
        result = DEFAULT_COMMANDS.execute("navigate", {"destination": "checkout"}, self.ctx)
        self.assertFalse(result.success)

        result = DEFAULT_COMMANDS.execute("navigate", {"destination": "category", "target": "vitaminas"}, self.ctx)
        self.assertEqual(result.data["url"], "/products?category=Vitaminas")

        result = DEFAULT_COMMANDS.execute("navigate", {"destination": "product", "target": "dipirona"}, self.ctx)
        self.assertTrue(result.data["url"].startswith("/products/"))

        self.assertFalse(DEFAULT_COMMANDS.execute("navigate", {"destination": "moon"}, self.ctx).success)

    def test_info_commands(self):
        categories = DEFAULT_COMMANDS.execute("list_categories", {}, self.ctx)
        self.assertIn({"name": "Vitaminas", "count": 3}, categories.data["categories"])
        info = DEFAULT_COMMANDS.execute("store_info", {}, self.ctx)
        self.assertIn("08:00-22:00", info.message)

    def test_extra_info_commands(self):
        promotions = DEFAULT_COMMANDS.execute("show_promotions", {}, self.ctx)
        self.assertEqual(promotions.kind, CommandKind.INFO)
        self.assertIn("SAUDE20", promotions.message)
        self.assertEqual(len(promotions.data["promotions"]), 4)

        prescription = DEFAULT_COMMANDS.execute("prescription_info", {}, self.ctx)
        self.assertIn("receitas@farmacia.example", prescription.message)
        self.assertIn("controlled", prescription.data["requirements"])

        pharmacist = DEFAULT_COMMANDS.execute(
            "contact_pharmacist", {"question": "Can I take ibuprofeno with losartana?", "urgency": "high"}, self.ctx
        )
        self.assertTrue(pharmacist.success)
        self.assertIn("emergency", pharmacist.message)
        self.assertFalse(DEFAULT_COMMANDS.execute("contact_pharmacist", {"question": ""}, self.ctx).success)


class GeminiClientTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_sends_tools_and_parses_function_calls(self):
        gemini = ScriptedGemini(gemini_calls(("search_products", {"query": "dipirona"})))
        turn = await gemini.client().generate(
            [{"role": "user", "parts": [{"text": "hi"}]}], tools=DEFAULT_COMMANDS.tools(), system_instruction="be nice"
        )
        self.assertEqual(turn.function_calls[0].name, "search_products")
        self.assertEqual(turn.function_calls[0].args, {"query": "dipirona"})

        request = gemini.requests[0]
        self.assertEqual(request.headers["x-goog-api-key"], "test-key")
        self.assertTrue(request.url.path.endswith(":generateContent"))
        body = gemini.body(0)
        self.assertEqual(body["systemInstruction"]["parts"][0]["text"], "be nice")
        self.assertEqual(body["generationConfig"]["maxOutputTokens"], 2000)
        self.assertEqual(len(body["tools"][0]["functionDeclarations"]), len(DEFAULT_COMMANDS.names))

    async def test_http_errors_raise(self):
        with self.assertRaises(LLMError):
            await ScriptedGemini(status_code=500).client().generate([])
        with self.assertRaises(LLMError):
            await ScriptedGemini({"candidates": []}).client().generate([])
        with self.assertRaises(LLMError):
            await GeminiClient(api_key=None).generate([])


class PharmacyAgentTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.storefront = make_storefront()
        self.key = CartKey.for_session("chat-1")

    def tearDown(self):
        self.storefront.close()

    def agent(self, gemini=None, **kwargs) -> PharmacyAgent:
        llm = gemini.client() if gemini else GeminiClient(api_key=None)
        return PharmacyAgent(self.storefront, llm=llm, **kwargs)

    # ---------- Gemini tool loop ----------

    async def test_tool_loop_routes_overlay_from_display_results(self):
        gemini = ScriptedGemini(
            gemini_calls(("search_products", {"query": "dipirona"}), ("add_to_cart", {"product": "dipirona", "quantity": 2})),
            gemini_text("I added 2 Dipirona 500mg to your cart."),
        )
        reply = await self.agent(gemini).process_message("chat-1", "I need dipirona, add two")

        self.assertEqual(reply.mode, "gemini")
        self.assertEqual(reply.response, "I added 2 Dipirona 500mg to your cart.")
        self.assertEqual([r.tool for r in reply.tool_results], ["search_products", "add_to_cart"])
        self.assertEqual(reply.overlay.tool, "search_products")
        self.assertEqual(reply.overlay.products[0]["name"], "Dipirona 500mg")
        self.assertTrue(reply.cart_changed)
        self.assertEqual(self.storefront.carts.get_cart(self.key).items[0].quantity, 2)

        follow_up = gemini.body(1)["contents"]
        self.assertEqual(follow_up[-2]["role"], "model")
        responses = [part["functionResponse"] for part in follow_up[-1]["parts"]]
        self.assertEqual([r["name"] for r in responses], ["search_products", "add_to_cart"])
        self.assertTrue(responses[1]["response"]["success"])

    async def test_history_is_sent_back_to_the_model(self):
        gemini = ScriptedGemini(gemini_text("Hello!"))
        agent = self.agent(gemini)
        await agent.process_message("chat-1", "hi")
        await agent.process_message("chat-1", "again", context={"page": "/cart"})
        contents = gemini.body(1)["contents"]
        self.assertEqual([c["role"] for c in contents], ["user", "model", "user"])
        self.assertIn("page: /cart", contents[-1]["parts"][0]["text"])

    async def test_round_limit_stops_the_loop(self):
        gemini = ScriptedGemini(gemini_calls(("view_cart", {})))
        reply = await self.agent(gemini, max_tool_rounds=2).process_message("chat-1", "loop forever")
        self.assertEqual(len(gemini.requests), 2)
        self.assertEqual(len(reply.tool_results), 2)
        self.assertIn("Your cart is empty.", reply.response)

    async def test_llm_failure_falls_back_to_rules(self):
        gemini = ScriptedGemini(status_code=503)
        reply = await self.agent(gemini).process_message("chat-1", "add 3 paracetamol 750mg")
        self.assertEqual(reply.mode, "rules")
        self.assertTrue(reply.cart_changed)
        cart = self.storefront.carts.get_cart(self.key)
        self.assertEqual((cart.items[0].name, cart.items[0].quantity), ("Paracetamol 750mg", 3))

    # ---------- Rules ----------

    async def test_rules_search_and_cart(self):
        agent = self.agent()
        reply = await agent.process_message("chat-1", "I need something for headache")
        self.assertEqual(reply.mode, "rules")
        self.assertIn("Dipirona 500mg", {p["name"] for p in reply.overlay.products})

        reply = await agent.process_message("chat-1", "add 2x dipirona")
        self.assertTrue(reply.cart_changed)
        self.assertIsNone(reply.overlay)

        reply = await agent.process_message("chat-1", "remove ibuprofeno from my cart")
        self.assertFalse(reply.tool_results[0].success)

        reply = await agent.process_message("chat-1", "show my cart")
        self.assertIn("2x Dipirona 500mg", reply.response)

        reply = await agent.process_message("chat-1", "clear my cart")
        self.assertTrue(reply.cart_changed)
        self.assertEqual(self.storefront.carts.get_cart(self.key).items, [])

    async def test_rules_unknown_product_offers_search(self):
        reply = await self.agent().process_message("chat-1", "buy unobtainium")
        self.assertEqual([r.tool for r in reply.tool_results], ["add_to_cart", "search_products"])
        self.assertFalse(reply.cart_changed)

    async def test_rules_navigation(self):
        agent = self.agent()
        reply = await agent.process_message("chat-1", "take me to the vitaminas category")
        self.assertEqual(reply.navigation.url, "/products?category=Vitaminas")

        reply = await agent.process_message("chat-1", "go to checkout")
        self.assertIsNone(reply.navigation)
        self.assertFalse(reply.tool_results[0].success)

    async def test_rules_navigation_looks_up_categories_off_the_event_loop(self):
        agent = self.agent()
        with mock.patch("concierge.agent.run_in_threadpool", wraps=run_in_threadpool) as pool:
            reply = await agent.process_message("chat-1", "open the vitaminas page")
        self.assertEqual(reply.navigation.url, "/products?category=Vitaminas")
        pool.assert_any_call(self.storefront.catalog.categories)

    async def test_logged_in_user_gets_user_cart(self):
        user = self.storefront.auth.register("alice", "secret")
        await self.agent().process_message("chat-1", "add dipirona", user=user)
        self.assertEqual(len(self.storefront.carts.get_cart(CartKey.for_user(user.id)).items), 1)
        self.assertEqual(self.storefront.carts.get_cart(self.key).items, [])

    # ---------- Sessions ----------

    async def test_history_is_capped_and_sessions_can_be_cleared(self):
        agent = self.agent(history_limit=4)
        for message in ("help", "hours?", "help"):
            await agent.process_message("chat-1", message)
        history = agent.history("chat-1")
        self.assertEqual(len(history), 4)
        self.assertEqual(history[0].content, "hours?")
        self.assertTrue(agent.clear_session("chat-1"))
        self.assertEqual(agent.history("chat-1"), [])

    async def test_idle_sessions_are_evicted(self):
        agent = self.agent(session_ttl=60)
        await agent.process_message("chat-old", "help")
        agent.sessions["chat-old"].last_activity -= timedelta(minutes=5)
        await agent.process_message("chat-new", "help")
        self.assertNotIn("chat-old", agent.sessions)
        self.assertIn("chat-new", agent.sessions)
        self.assertEqual(agent.history("chat-old"), [])

    async def test_least_recently_active_session_is_dropped_at_the_limit(self):
        agent = self.agent(max_sessions=3)
        for n in range(5):
            await agent.process_message(f"chat-{n}", "help")
        self.assertEqual(list(agent.sessions), ["chat-2", "chat-3", "chat-4"])
        self.assertEqual(agent.config()["maxSessions"], 3)

    async def test_blank_message(self):
        reply = await self.agent().process_message("chat-1", "   ")
        self.assertEqual(reply.tool_results, [])
        self.assertIn("didn't catch", reply.response)


class IntentParserTestCase(unittest.TestCase):
    def setUp(self):
        self.parser = IntentParser()

    def test_classify_intent(self):
        cases = {
            "clear my cart": "cart_clear",
            "remove dipirona from my cart": "cart_remove",
            "add 2 dipirona to my cart": "cart_add",
            "go to checkout": "navigate",
            "what's in my cart?": "cart_view",
            "what are your opening hours?": "store_info",
            "help": "help",
            "do you have dipirona?": "search",
            "my address is here": "search",
        }
        for text, intent in cases.items():
            self.assertEqual(self.parser.classify_intent(text), intent, text)

    def test_extract_quantity(self):
        self.assertEqual(self.parser.extract_quantity("add 3 dipirona"), 3)
        self.assertEqual(self.parser.extract_quantity("dipirona x2"), 2)
        self.assertEqual(self.parser.extract_quantity("4 boxes of dipirona"), 4)
        self.assertEqual(self.parser.extract_quantity("add dipirona 500mg"), 1)
        self.assertEqual(self.parser.extract_quantity("buy 500mg dipirona"), 1)
        self.assertEqual(self.parser.extract_quantity("add 500 mg dipirona"), 1)
        self.assertEqual(self.parser.extract_quantity("buy 2 dipirona 500mg"), 2)

    def test_extract_search_terms(self):
        self.assertEqual(self.parser.extract_search_terms("add 2 dipirona to my cart", "cart_add"), "dipirona")
        self.assertEqual(self.parser.extract_search_terms("add dipirona 500mg please", "cart_add"), "dipirona 500mg")
        self.assertEqual(self.parser.extract_search_terms("I need something for headache"), "headache")
        self.assertEqual(self.parser.extract_search_terms("do you have álcool gel 70%?"), "álcool gel 70%")

    def test_extract_destination(self):
        self.assertEqual(self.parser.extract_destination("go to checkout"), ("checkout", ""))
        self.assertEqual(self.parser.extract_destination("take me to the Vitaminas category"), ("category", "vitaminas"))
        self.assertEqual(self.parser.extract_destination("open the dipirona page"), (None, "dipirona"))


if __name__ == "__main__":
    unittest.main()
