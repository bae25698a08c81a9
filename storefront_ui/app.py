import uuid

import streamlit as st

from storefront.config import STOREFRONT_URL
from storefront_ui.client import StorefrontClient, format_price

st.set_page_config(
    page_title="Pharmacy Assistant",
    page_icon="💊",
    layout="wide"
)

# Set up session state
if 'session_id' not in st.session_state:
    st.session_state.session_id = f"web-{uuid.uuid4().hex[:16]}"
if 'api' not in st.session_state:
    st.session_state.api = StorefrontClient(STOREFRONT_URL)
if 'user' not in st.session_state:
    st.session_state.user = None
if 'chat_history' not in st.session_state:
    st.session_state.chat_history = []
if 'overlay' not in st.session_state:
    st.session_state.overlay = None
if 'navigation' not in st.session_state:
    st.session_state.navigation = None
if 'search_results' not in st.session_state:
    st.session_state.search_results = []
if 'last_search_query' not in st.session_state:
    st.session_state.last_search_query = ""
if 'cart_notice' not in st.session_state:
    st.session_state.cart_notice = False
if 'last_order' not in st.session_state:
    st.session_state.last_order = None

api: StorefrontClient = st.session_state.api
session_id = st.session_state.session_id


def show_error(result) -> bool:
    if isinstance(result, dict) and result.get("error"):
        st.error(result["error"])
        return True
    return False


def product_card(product: dict, key_prefix: str):
    st.subheader(product.get("name", "Unknown"))
    st.write(f"**{format_price(product.get('price'))}** · {product.get('manufacturer', '')}")
    st.caption(f"{product.get('category', '')} · {product.get('stock', 0)} in stock")
    if product.get("description"):
        st.write(product["description"])
    if product.get("prescription"):
        st.warning("Prescription required")
    if st.button("Add to Cart", key=f"{key_prefix}_{product.get('id')}"):
        result = api.add_to_cart(session_id, product.get("id", ""))
        if not show_error(result):
            st.success("Added to cart!")
            st.rerun()


# main UI
st.title("💊 Online Pharmacy")
st.markdown("*Catalog, cart and an AI pharmacy assistant*")

# sidebar
with st.sidebar:
    st.header("Account")
    if st.session_state.user:
        st.write(f"Logged in as **{st.session_state.user['username']}**")
        if st.button("Log out"):
            api.logout()
            st.session_state.user = None
            st.session_state.session_id = f"web-{uuid.uuid4().hex[:16]}"
            st.rerun()
    else:
        username = st.text_input("Username")
        password = st.text_input("Password", type="password")
        col1, col2 = st.columns(2)
        with col1:
            if st.button("Log in", type="primary"):
                result = api.login(username, password, session_id)
                if not show_error(result):
                    st.session_state.user = result["user"]
                    st.rerun()
        with col2:
            if st.button("Register"):
                result = api.register(username, password)
                if not show_error(result):
                    st.success("Account created, you can log in now")

    st.header("Cart")
    cart = api.get_cart(session_id)
    if not show_error(cart):
        st.metric("Items", cart.get("itemCount", 0))
        st.metric("Total", format_price(cart.get("total", 0)))

    st.caption(f"Session: `{session_id}`")

# tabs
tab1, tab2, tab3, tab4 = st.tabs(["💬 Assistant", "🔍 Catalog", "🛒 Cart", "📊 Status"])

with tab1:
    chat_col, overlay_col = st.columns([3, 2])

    with chat_col:
        st.header("Pharmacy Assistant")
        for role, message in st.session_state.chat_history:
            st.chat_message(role).write(message)

        if st.session_state.navigation:
            nav = st.session_state.navigation
            st.info(f"🧭 The assistant suggests going to **{nav['label']}** (`{nav['url']}`)")

        if st.session_state.cart_notice:
            st.success("Cart updated! Check the 🛒 Cart tab to see changes.")

        if prompt := st.chat_input("Ask about products, your cart, opening hours..."):
            st.session_state.chat_history.append(("user", prompt))
            with st.spinner("Thinking..."):
                reply = api.chat(session_id, prompt, context={"page": "assistant"})

            if reply.get("error"):
                st.session_state.chat_history.append(("assistant", f"Error: {reply['error']}"))
            else:
                st.session_state.chat_history.append(("assistant", reply.get("response", "")))
                # the panel only changes when the assistant displayed products
                if reply.get("overlay"):
                    st.session_state.overlay = reply["overlay"]
                st.session_state.navigation = reply.get("navigation")
                st.session_state.cart_notice = bool(reply.get("cartChanged"))
            st.rerun()

        if st.button("Clear Chat"):
            api.reset_chat(session_id)
            st.session_state.chat_history = []
            st.session_state.overlay = None
            st.session_state.navigation = None
            st.session_state.cart_notice = False
            st.rerun()

    with overlay_col:
        overlay = st.session_state.overlay
        if overlay:
            st.header(overlay.get("title", "Products"))
            for product in overlay.get("products", []):
                product_card(product, "overlay")
                st.divider()
            if st.button("Close panel"):
                st.session_state.overlay = None
                st.rerun()
        else:
            st.info("Products suggested by the assistant will appear here.")

with tab2:
    st.header("Catalog")

    categories = api.categories()
    category_options = ["All"] + (categories.get("categories", []) if not categories.get("error") else [])

    col1, col2, col3 = st.columns([3, 2, 1])
    with col1:
        search_query = st.text_input("Search products:", placeholder="dipirona, vitamina, protetor solar...")
    with col2:
        category = st.selectbox("Category", category_options)
    with col3:
        search_btn = st.button("Search", type="primary")

    if search_btn:
        with st.spinner("Searching..."):
            results = api.search_products(search_query.strip(), None if category == "All" else category)
        if not show_error(results):
            st.session_state.search_results = results
            st.session_state.last_search_query = search_query.strip() or category

    if st.session_state.search_results:
        products = st.session_state.search_results
        st.success(f"Found {len(products)} products")
        cols = st.columns(3)
        for i, product in enumerate(products):
            with cols[i % 3]:
                product_card(product, "catalog")
                st.divider()
    elif st.session_state.last_search_query:
        st.info(f"No products found for '{st.session_state.last_search_query}'. Try different keywords.")

with tab3:
    st.header("Shopping Cart")
    st.session_state.cart_notice = False

    cart = api.get_cart(session_id)
    if not show_error(cart):
        items = cart.get("items", [])
        if items:
            for item in items:
                product_id = item["productId"]
                col1, col2, col3 = st.columns([3, 2, 2])
                with col1:
                    st.write(f"**{item['name']}**")
                    st.caption(item.get("category", ""))
                    if item.get("prescription"):
                        st.caption("⚠️ Prescription required")
                with col2:
                    st.write(f"Unit: {format_price(item['price'])}")
                    st.write(f"Subtotal: {format_price(item['subtotal'])}")
                with col3:
                    quantity = st.number_input(
                        "Qty", min_value=0, value=item["quantity"], step=1, key=f"qty_{product_id}"
                    )
                    if quantity != item["quantity"]:
                        if not show_error(api.update_quantity(session_id, product_id, int(quantity))):
                            st.rerun()
                    if st.button("🗑️ Remove", key=f"remove_{product_id}"):
                        if not show_error(api.remove_from_cart(session_id, product_id)):
                            st.rerun()
                st.divider()

            col1, col2 = st.columns(2)
            with col1:
                st.metric("Total Items", cart.get("itemCount", 0))
            with col2:
                st.metric("Total", format_price(cart.get("total", 0)))

            if st.button("Clear Cart", type="secondary"):
                if not show_error(api.clear_cart(session_id)):
                    st.rerun()

            st.subheader("Checkout")
            with st.form("checkout"):
                name = st.text_input("Full name")
                address = st.text_input("Delivery address")
                email = st.text_input("E-mail")
                if st.form_submit_button("Place order", type="primary"):
                    result = api.checkout(session_id, {"name": name, "address": address, "email": email})
                    if not show_error(result):
                        st.session_state.last_order = result["order"]
                        st.rerun()
        else:
            st.info("Cart is empty - start shopping!")

    if st.session_state.last_order:
        order = st.session_state.last_order
        st.success(f"Order {order['id']} confirmed, total {format_price(order['total'])}")

with tab4:
    st.header("Service Status")
    if st.button("Check Status"):
        health = api.health()
        if health.get("status") == "healthy":
            st.success(f"🟢 API OK · {health.get('products', 0)} products · assistant LLM {health.get('llm')}")
        else:
            st.error(f"🔴 API problem: {health.get('error') or health.get('database')}")
        warm = api.warmup()
        if not show_error(warm):
            st.write(f"Uptime: {warm.get('uptime', 0):.0f}s")

# footer
st.markdown("---")
st.caption("This assistant does not replace advice from a doctor or pharmacist.")
