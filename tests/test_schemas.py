import re

import pytest

from schemas import Order, Product, User, can_transition, dump, new_order_id


@pytest.mark.parametrize(
    "current, new, allowed",
    [
        ("confirmed", "processing", True),
        ("confirmed", "delivered", True),
        ("shipped", "processing", False),
        ("processing", "cancelled", True),
        ("delivered", "cancelled", False),
        ("cancelled", "confirmed", False),
        ("shipped", "shipped", True),
    ],
)
def test_status_transitions(current, new, allowed):
    assert can_transition(current, new) is allowed


def test_new_order_id_shape():
    assert re.fullmatch(r"ord-\d{6}", new_order_id())


def test_user_defaults():
    user = dump(User(uid="u1"))
    assert user == {"uid": "u1", "name": "", "address": "", "role": "consumer", "wishlist": [], "coins": 50}


def test_product_accepts_camel_case():
    product = Product.model_validate({"id": "p", "name": "Ghee", "price": 500, "storeName": "Farm", "expiryDate": "Soon"})
    assert product.store_name == "Farm"
    assert dump(product)["expiryDate"] == "Soon"


def test_order_rejects_unknown_status():
    with pytest.raises(ValueError):
        Order.model_validate({"id": "o", "userId": "u", "items": [], "total": 0, "status": "lost", "date": "2024-01-01T00:00:00Z"})
