import re
from datetime import datetime, timedelta, timezone

import jwt
from fastapi.testclient import TestClient

import firebase_auth
import main
import seed
from config import settings


# ----------------------- Health -----------------------
def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "Backend is running"
    assert "timestamp" in body


def test_database_not_configured(client, monkeypatch):
    monkeypatch.setattr(main, "db", None)
    response = client.get("/api/products")
    assert response.status_code == 500
    assert response.json() == {"error": "Database not configured"}


def test_startup_ensures_indexes(mongo, monkeypatch):
    calls = []
    monkeypatch.setattr(firebase_auth, "init_firebase", lambda: calls.append("firebase"))
    with TestClient(main.app):
        assert calls == ["firebase"]
        assert mongo["user"].index_information()["uid_1"]["unique"] is True
        assert "id_1" in mongo["order"].index_information()


# ----------------------- Auth -----------------------
def test_dev_login_creates_user_once(client, mongo):
    payload = {"uid": "dev-1", "phoneNumber": "+911111111111", "name": "Ravi"}
    first = client.post("/api/auth/login", json=payload)
    second = client.post("/api/auth/login", json=payload)

    assert first.status_code == 200
    assert second.status_code == 200
    body = first.json()
    assert body["success"] is True
    assert body["user"] == {
        "uid": "dev-1",
        "name": "Ravi",
        "phoneNumber": "+911111111111",
        "email": "",
        "role": "consumer",
    }
    assert mongo["user"].count_documents({"uid": "dev-1"}) == 1
    assert mongo["user"].find_one({"uid": "dev-1"})["coins"] == 50


def test_dev_login_rejects_malformed_email(client, mongo):
    response = client.post("/api/auth/login", json={"uid": "dev-9", "email": "asha"})
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request"
    assert mongo["user"].find_one({"uid": "dev-9"}) is None


def test_dev_login_blank_email_is_dropped(client, mongo):
    response = client.post("/api/auth/login", json={"uid": "dev-10", "email": ""})
    assert response.status_code == 200
    assert response.json()["user"]["email"] == ""
    assert "email" not in mongo["user"].find_one({"uid": "dev-10"})


def test_session_token_claims(client):
    response = client.post("/api/auth/login", json={"uid": "dev-2", "phoneNumber": "+912222222222"})
    token = response.json()["token"]
    claims = jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])
    assert claims["uid"] == "dev-2"
    assert claims["phoneNumber"] == "+912222222222"
    expires = datetime.fromtimestamp(claims["exp"], tz=timezone.utc)
    assert timedelta(days=6) < expires - datetime.now(timezone.utc) <= timedelta(days=7)


def test_dev_login_requires_uid(client):
    response = client.post("/api/auth/login", json={"name": "No Uid"})
    assert response.status_code == 400
    assert response.json() == {"error": "uid required in dev mode"}


def test_production_requires_id_token(client, monkeypatch):
    monkeypatch.setattr(settings, "node_env", "production")
    response = client.post("/api/auth/login", json={"uid": "dev-1"})
    assert response.status_code == 400
    assert response.json() == {"error": "idToken is required"}


def test_id_token_without_firebase(client, monkeypatch):
    monkeypatch.setattr(firebase_auth, "is_initialized", lambda: False)
    response = client.post("/api/auth/login", json={"idToken": "abc"})
    assert response.status_code == 500
    assert response.json() == {"error": "Firebase Admin not initialized"}


def test_id_token_login(client, mongo, monkeypatch):
    monkeypatch.setattr(firebase_auth, "is_initialized", lambda: True)
    monkeypatch.setattr(
        firebase_auth,
        "verify_id_token",
        lambda token: {"uid": "fb-1", "phone_number": "+913333333333", "email": "meera@example.com", "name": "Meera"},
    )
    response = client.post("/api/auth/login", json={"idToken": "good"})
    assert response.status_code == 200
    assert response.json()["user"]["email"] == "meera@example.com"
    assert mongo["user"].find_one({"uid": "fb-1"})["role"] == "consumer"


def test_invalid_id_token(client, monkeypatch):
    def reject(token):
        raise firebase_auth.InvalidIdToken("bad signature")

    monkeypatch.setattr(firebase_auth, "is_initialized", lambda: True)
    monkeypatch.setattr(firebase_auth, "verify_id_token", reject)
    response = client.post("/api/auth/login", json={"idToken": "bad"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid ID token"}


def test_logout(client):
    response = client.post("/api/auth/logout")
    assert response.json() == {"success": True, "message": "Logged out successfully"}


def test_protected_route_without_token(client):
    response = client.get("/api/orders")
    assert response.status_code == 401
    assert response.json() == {"error": "Missing Authorization header"}


def test_protected_route_with_bad_token(client):
    response = client.get("/api/orders", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid token"}


def test_protected_route_with_expired_token(client):
    token = jwt.encode(
        {"uid": "u1", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        settings.jwt_secret,
        algorithm="HS256",
    )
    response = client.get("/api/orders", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json() == {"error": "Token expired"}


# ----------------------- Products -----------------------
def test_list_products_vertical_and_search(client, mongo, milk_products):
    seed.seed_products(mongo, milk_products)
    response = client.get("/api/products", params={"vertical": "DEALS", "search": "milk"})
    assert response.status_code == 200
    names = [p["name"] for p in response.json()]
    assert names == ["Fresh Milk"]


def test_list_products_search_is_case_insensitive_and_literal(client, mongo, milk_products):
    seed.seed_products(mongo, milk_products)
    assert len(client.get("/api/products", params={"search": "MILK"}).json()) == 2
    assert client.get("/api/products", params={"search": "m.lk"}).json() == []


def test_list_products_category_filter(client, mongo, milk_products):
    seed.seed_products(mongo, milk_products + [{"id": "m1", "name": "Clay Pot", "price": 200, "category": "Decor", "vertical": "MAKERS"}])
    response = client.get("/api/products", params={"category": "Decor"})
    assert [p["id"] for p in response.json()] == ["m1"]


def test_list_products_capped_at_100(client, mongo):
    seed.seed_products(mongo, [{"id": f"p{i}", "name": f"Item {i}", "price": i} for i in range(120)])
    assert len(client.get("/api/products").json()) == 100


def test_get_product(client, mongo, milk_products):
    seed.seed_products(mongo, milk_products)
    response = client.get("/api/products/d1")
    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Fresh Milk"
    assert body["stock"] == 0
    assert isinstance(body["_id"], str)


def test_get_missing_product(client):
    response = client.get("/api/products/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "Product not found"}


def test_create_product_applies_defaults(client):
    response = client.post("/api/products", json={"id": "n1", "name": "Jaggery", "price": 120, "vertical": "RURAL"})
    assert response.status_code == 201
    body = response.json()
    assert body["stock"] == 100
    assert body["rating"] == 4.5
    assert body["vertical"] == "RURAL"
    assert "createdAt" in body


def test_create_product_rejects_missing_fields(client):
    response = client.post("/api/products", json={"name": "No id"})
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request"


def test_update_product(client, mongo, milk_products):
    seed.seed_products(mongo, milk_products)
    response = client.put("/api/products/d1", json={"price": 35, "stock": 5})
    assert response.status_code == 200
    assert response.json()["price"] == 35
    assert mongo["product"].find_one({"id": "d1"})["stock"] == 5


def test_update_missing_product(client):
    response = client.put("/api/products/nope", json={"price": 1})
    assert response.status_code == 404


def test_delete_product(client, mongo, milk_products):
    seed.seed_products(mongo, milk_products)
    response = client.delete("/api/products/d1")
    assert response.json() == {"success": True, "message": "Product deleted"}
    assert client.delete("/api/products/d1").status_code == 404


# ----------------------- Orders -----------------------
def place(client, auth_headers, **extra):
    payload = {"items": [{"id": "p1", "price": 10, "quantity": 2}], "total": 20, **extra}
    return client.post("/api/orders", json=payload, headers=auth_headers)


def test_create_order(client, auth_headers):
    response = place(client, auth_headers, status="delivered", deliveryAddress="12 MG Road", paymentMode="COD")
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "confirmed"
    assert re.fullmatch(r"ord-\d{6}", body["id"])
    assert body["userId"] == "u1"
    assert body["total"] == 20
    assert body["deliveryAddress"] == "12 MG Road"
    assert body["items"][0]["quantity"] == 2


def test_list_orders_scoped_to_caller(client, mongo, auth_headers):
    place(client, auth_headers)
    mongo["order"].insert_one({"id": "ord-999999", "userId": "someone-else", "items": [], "total": 0, "status": "confirmed"})
    response = client.get("/api/orders", headers=auth_headers)
    assert response.status_code == 200
    assert [o["userId"] for o in response.json()] == ["u1"]


def test_order_status_advances(client, auth_headers):
    order_id = place(client, auth_headers).json()["id"]
    response = client.put(f"/api/orders/{order_id}", json={"status": "shipped"}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "shipped"


def test_order_status_cannot_go_back(client, auth_headers):
    order_id = place(client, auth_headers).json()["id"]
    client.put(f"/api/orders/{order_id}", json={"status": "delivered"}, headers=auth_headers)
    response = client.put(f"/api/orders/{order_id}", json={"status": "cancelled"}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid status transition from delivered to cancelled"}


def test_order_status_rejects_unknown_value(client, auth_headers):
    order_id = place(client, auth_headers).json()["id"]
    response = client.put(f"/api/orders/{order_id}", json={"status": "lost"}, headers=auth_headers)
    assert response.status_code == 400


def test_update_missing_order(client, auth_headers):
    response = client.put("/api/orders/ord-000000", json={"status": "shipped"}, headers=auth_headers)
    assert response.status_code == 404
    assert response.json() == {"error": "Order not found"}


def test_cancel_order_deletes_it(client, mongo, auth_headers):
    order_id = place(client, auth_headers).json()["id"]
    response = client.delete(f"/api/orders/{order_id}", headers=auth_headers)
    assert response.json() == {"success": True, "message": "Order cancelled"}
    assert mongo["order"].count_documents({}) == 0
    assert client.delete(f"/api/orders/{order_id}", headers=auth_headers).status_code == 404


# ----------------------- Users -----------------------
def test_get_profile(client, auth_headers):
    response = client.get("/api/users/profile", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["name"] == "Asha"


def test_get_profile_missing_user(client):
    token = main.create_token({"uid": "ghost", "phoneNumber": ""})
    response = client.get("/api/users/profile", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 404
    assert response.json() == {"error": "User not found"}


def test_get_wishlist_missing_user(client):
    token = main.create_token({"uid": "ghost", "phoneNumber": ""})
    response = client.get("/api/users/wishlist", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 404
    assert response.json() == {"error": "User not found"}


def test_update_profile(client, auth_headers):
    response = client.put("/api/users/profile", json={"address": "Jayanagar", "email": "asha@example.com"}, headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["address"] == "Jayanagar"
    assert body["name"] == "Asha"


def test_wishlist_add_is_idempotent(client, auth_headers):
    client.post("/api/users/wishlist/add", json={"productId": "d1"}, headers=auth_headers)
    client.post("/api/users/wishlist/add", json={"productId": "d1"}, headers=auth_headers)
    assert client.get("/api/users/wishlist", headers=auth_headers).json() == ["d1"]


def test_wishlist_remove(client, auth_headers):
    client.post("/api/users/wishlist/add", json={"productId": "d1"}, headers=auth_headers)
    response = client.post("/api/users/wishlist/remove", json={"productId": "d1"}, headers=auth_headers)
    assert response.json()["wishlist"] == []
    again = client.post("/api/users/wishlist/remove", json={"productId": "d1"}, headers=auth_headers)
    assert again.status_code == 200


def test_upgrade_seller(client, auth_headers):
    profile = {"businessName": "Asha Crafts", "category": "Textiles"}
    response = client.post("/api/users/upgrade-seller", json={"sellerProfile": profile}, headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "seller"
    assert body["sellerProfile"] == profile


# ----------------------- Assistant -----------------------
def test_assistant_without_api_key(client, monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", None)
    response = client.post("/api/assistant", json={"prompt": "hello"})
    assert response.status_code == 200
    assert "cannot connect" in response.json()["reply"]


# ----------------------- Errors & limits -----------------------
def test_unhandled_error_returns_raw_message(mongo, monkeypatch):
    def explode(prompt, products):
        raise RuntimeError("boom")

    monkeypatch.setattr(main.assistant, "generate_assistant_response", explode)
    with TestClient(main.app, raise_server_exceptions=False) as c:
        response = c.post("/api/assistant", json={"prompt": "hi"})
    assert response.status_code == 500
    assert response.json() == {"error": "boom"}


def test_rate_limit(client, monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_per_minute", 2)
    assert client.get("/api/health").status_code == 200
    assert client.get("/api/health").status_code == 200
    response = client.get("/api/health")
    assert response.status_code == 429
    assert "Retry-After" in response.headers


def test_rate_limiter_window_resets():
    limiter = main.RateLimiter(window_seconds=60)
    assert limiter.hit("ip", 1, now=0) is None
    assert limiter.hit("ip", 1, now=10) == 50
    assert limiter.hit("ip", 1, now=61) is None


def test_rate_limiter_forgets_idle_clients():
    limiter = main.RateLimiter(window_seconds=60)
    for i in range(1000):
        limiter.hit(f"10.0.{i // 256}.{i % 256}", 200, now=0)
    assert len(limiter.hits) == 1000
    assert limiter.hit("10.9.9.9", 200, now=10000) is None
    assert list(limiter.hits) == ["10.9.9.9"]


def test_rate_limiter_sweep_keeps_open_windows():
    limiter = main.RateLimiter(window_seconds=60)
    limiter.hit("old", 5, now=0)
    limiter.hit("recent", 5, now=30)
    limiter.hit("new", 5, now=65)
    assert set(limiter.hits) == {"recent", "new"}
    assert limiter.hits["recent"] == (30, 1)
