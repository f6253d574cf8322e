"""
Per-session shopping state: cart, wishlist, checkout and orders.

A StoreSession is created for one shopper and passed to whatever needs it;
nothing here is shared between sessions or persisted. Products, cart items
and orders are plain dicts in the API's camelCase shape.
"""
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from schemas import new_order_id

DEFAULT_LOCATION = {"id": "loc1", "name": "Indiranagar, Bengaluru", "lat": 12.9719, "long": 77.6412}

DEFAULT_SETTINGS = {"notifications": True, "darkMode": False, "dataSaver": False}

TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "en": {
        "home": "Home",
        "categories": "Categories",
        "cart": "Cart",
        "account": "Account",
        "deals_near_me": "Deals Nearby",
        "rural_gold": "Rural Gold",
        "makers_mart": "Makers Mart",
        "add": "ADD",
        "out_of_stock": "SOLD OUT",
        "my_orders": "My Orders",
        "logout": "Logout",
    },
    "hi": {
        "home": "होम",
        "cart": "कार्ट",
        "account": "खाता",
        "add": "जोड़ें",
        "my_orders": "मेरे ऑर्डर",
        "logout": "लॉग आउट",
    },
}


def line_total(items: List[Dict[str, Any]]) -> float:
    return sum(item["price"] * item["quantity"] for item in items)


class StoreSession:
    def __init__(self, products: Optional[List[Dict[str, Any]]] = None):
        self.products: List[Dict[str, Any]] = list(products or [])
        self.cart: List[Dict[str, Any]] = []
        self.wishlist: List[str] = []
        self.orders: List[Dict[str, Any]] = []
        self.checkout_items: List[Dict[str, Any]] = []
        self.order_success = False
        self.user: Optional[Dict[str, Any]] = None
        self.language = "en"
        self.location = dict(DEFAULT_LOCATION)
        self.settings = dict(DEFAULT_SETTINGS)
        self.toast: Optional[Dict[str, Any]] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    # --- catalog ---

    def add_product(self, product: Dict[str, Any]):
        self.products.insert(0, product)
        if self.user:
            self.user["myProducts"] = [*self.user.get("myProducts", []), product["id"]]
        self.show_toast("Product Listed Successfully!", "success")

    # --- cart ---

    def _cart_index(self, product_id: str) -> Optional[int]:
        for idx, item in enumerate(self.cart):
            if item["id"] == product_id:
                return idx
        return None

    def add_to_cart(self, product: Dict[str, Any]):
        idx = self._cart_index(product["id"])
        if idx is None:
            self.cart.append({**product, "quantity": 1})
        else:
            self.cart[idx] = {**self.cart[idx], "quantity": self.cart[idx]["quantity"] + 1}
        self.show_toast("Product added to cart!", "success")

    def remove_from_cart(self, product_id: str):
        self.cart = [item for item in self.cart if item["id"] != product_id]

    def update_quantity(self, product_id: str, quantity: int):
        """Set an absolute quantity; zero or less removes the item."""
        if quantity <= 0:
            self.remove_from_cart(product_id)
            return
        self.cart = [
            {**item, "quantity": quantity} if item["id"] == product_id else item
            for item in self.cart
        ]

    def clear_cart(self):
        self.cart = []

    @property
    def cart_total(self) -> float:
        return line_total(self.cart)

    # --- wishlist ---

    def toggle_wishlist(self, product_id: str):
        if product_id in self.wishlist:
            self.wishlist = [pid for pid in self.wishlist if pid != product_id]
        else:
            self.wishlist = [*self.wishlist, product_id]
            self.show_toast("Added to Wishlist", "success")

    def move_to_cart(self, product_id: str):
        product = next((p for p in self.products if p["id"] == product_id), None)
        if product is None:
            return
        self.add_to_cart(product)
        self.wishlist = [pid for pid in self.wishlist if pid != product_id]

    # --- checkout & orders ---

    def initiate_checkout(self, items: List[Dict[str, Any]]):
        self.checkout_items = list(items)

    def place_order(self, delivery_details: Dict[str, str]) -> Dict[str, Any]:
        """Turn the checkout items into a confirmed order and drop them from the cart."""
        items = [dict(item) for item in self.checkout_items]
        order = {
            "id": new_order_id(),
            "items": items,
            "total": line_total(items),
            "status": "confirmed",
            "date": datetime.now(timezone.utc).isoformat(),
            "deliveryAddress": delivery_details.get("address"),
            "paymentMode": delivery_details.get("payment"),
        }
        self.orders = [order, *self.orders]

        bought = {item["id"] for item in items}
        self.cart = [item for item in self.cart if item["id"] not in bought]
        self.checkout_items = []
        self.order_success = True
        return order

    def close_order_success(self):
        self.order_success = False

    def redeem_order(self, order_id: str):
        self.orders = [
            {**o, "status": "delivered"} if o["id"] == order_id else o
            for o in self.orders
        ]

    def cancel_order(self, order_id: str):
        self.orders = [o for o in self.orders if o["id"] != order_id]
        self.show_toast("Order cancelled successfully", "success")

    # --- account ---

    def login(self, phone: str, name: str):
        self.user = {
            "id": "u_" + str(int(time.time() * 1000)),
            "name": name,
            "phone": phone,
            "role": "consumer",
            "address": self.location["name"],
            "coins": 50,
        }

    def logout(self):
        self.user = None
        self.cart = []
        self.wishlist = []

    def upgrade_to_seller(self, role: str, seller_profile: Dict[str, Any]):
        if not self.user:
            return
        self.user = {**self.user, "role": role, "sellerProfile": seller_profile}
        self.show_toast("Seller Profile Created!", "success")

    def set_location(self, location: Dict[str, Any]):
        self.location = location
        if self.user:
            self.user = {**self.user, "address": location["name"]}

    def update_settings(self, key: str, value: bool):
        if key not in self.settings:
            raise KeyError(f"Unknown setting: {key}")
        self.settings = {**self.settings, key: value}

    # --- ui ---

    def show_toast(self, message: str, type: str = "info"):
        self.toast = {"message": message, "type": type, "id": int(time.time() * 1000)}

    def clear_toast(self):
        self.toast = None

    def set_language(self, language: str):
        if language not in TRANSLATIONS:
            raise ValueError(f"Unsupported language: {language}")
        self.language = language

    def t(self, key: str) -> str:
        return TRANSLATIONS[self.language].get(key) or TRANSLATIONS["en"].get(key, key)
