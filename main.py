import logging
import re
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

import jwt
from bson.objectid import ObjectId
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo import DESCENDING, ReturnDocument
from starlette.exceptions import HTTPException as StarletteHTTPException

import assistant
import firebase_auth
from config import settings
from database import db, create_document, ensure_indexes
from schemas import (
    AssistantBody,
    LoginBody,
    Order as OrderSchema,
    OrderCreateBody,
    OrderStatusBody,
    Product as ProductSchema,
    ProductUpdateBody,
    ProfileUpdateBody,
    UpgradeSellerBody,
    User as UserSchema,
    WishlistBody,
    can_transition,
    dump,
    new_order_id,
)

log = logging.getLogger("clearx")


def setup_logging():
    root = logging.getLogger()
    if root.handlers:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    root.addHandler(handler)
    root.setLevel(logging.INFO)


setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    firebase_auth.init_firebase()
    if db is not None:
        ensure_indexes(db)
    log.info("ClearX Backend starting (env=%s)", settings.node_env)
    yield


app = FastAPI(title="ClearX Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------- Utils -----------------------
JWT_ALGO = "HS256"
security = HTTPBearer(auto_error=False)


def get_db():
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.get("_id")
    if isinstance(_id, ObjectId):
        doc["_id"] = str(_id)
    # convert datetimes
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc


def public_user(user: dict) -> dict:
    return {
        "uid": user.get("uid"),
        "name": user.get("name", ""),
        "phoneNumber": user.get("phoneNumber", ""),
        "email": user.get("email", ""),
        "role": user.get("role", "consumer"),
    }


def create_token(payload: dict) -> str:
    exp = datetime.now(timezone.utc) + timedelta(days=7)
    to_encode = {**payload, "exp": exp}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)):
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    payload = decode_token(credentials.credentials)
    uid = payload.get("uid")
    if not uid:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    return {"uid": uid, "phoneNumber": payload.get("phoneNumber")}


# ----------------------- Rate limiting -----------------------
class RateLimiter:
    """Fixed one-minute window per client key."""

    def __init__(self, window_seconds: int = 60):
        self.window_seconds = window_seconds
        self.hits: Dict[str, Tuple[float, int]] = {}
        self.last_sweep: Optional[float] = None

    def sweep(self, now: float):
        """Drop keys whose window has already closed."""
        expired = [k for k, (start, _) in self.hits.items() if now - start >= self.window_seconds]
        for k in expired:
            del self.hits[k]
        self.last_sweep = now

    def hit(self, key: str, limit: int, now: Optional[float] = None) -> Optional[int]:
        """Count a request; returns seconds to wait when over the limit."""
        now = time.monotonic() if now is None else now
        if self.last_sweep is None:
            self.last_sweep = now
        elif now - self.last_sweep >= self.window_seconds:
            self.sweep(now)
        start, count = self.hits.get(key, (now, 0))
        if now - start >= self.window_seconds:
            start, count = now, 0
        count += 1
        self.hits[key] = (start, count)
        if count > limit:
            return max(1, int(self.window_seconds - (now - start)))
        return None

    def reset(self):
        self.hits.clear()
        self.last_sweep = None


limiter = RateLimiter()


@app.middleware("http")
async def rate_limit_and_log(request: Request, call_next):
    client = request.client.host if request.client else "unknown"
    retry_after = limiter.hit(client, settings.rate_limit_per_minute)
    if retry_after is not None:
        log.warning("Rate limit exceeded for %s", client)
        return JSONResponse(
            status_code=429,
            content={"error": "Too many requests, please try again later."},
            headers={"Retry-After": str(retry_after)},
        )
    started = time.perf_counter()
    response = await call_next(request)
    log.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code,
             (time.perf_counter() - started) * 1000)
    return response


# ----------------------- Errors -----------------------
@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    log.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": str(exc)})


# ----------------------- Health -----------------------
@app.get("/api/health")
def health():
    return {"status": "Backend is running", "timestamp": datetime.now(timezone.utc).isoformat()}


# ----------------------- Auth -----------------------
def find_or_create_user(uid: str, phone_number: Optional[str], name: Optional[str], email: Optional[str]) -> dict:
    users = get_db()["user"]
    user = users.find_one({"uid": uid})
    if not user:
        new_user = UserSchema(
            uid=uid,
            phone_number=phone_number or None,
            name=name or "",
            email=email or None,
            role="consumer",
        )
        create_document("user", new_user)
        user = users.find_one({"uid": uid})
        log.info("Created user %s", uid)
    return user


@app.post("/api/auth/login")
def login(body: LoginBody):
    if not body.id_token:
        if settings.is_production:
            raise HTTPException(status_code=400, detail="idToken is required")
        if not body.uid:
            raise HTTPException(status_code=400, detail="uid required in dev mode")
        user = find_or_create_user(body.uid, body.phone_number, body.name, body.email)
    else:
        if not firebase_auth.is_initialized():
            raise HTTPException(status_code=500, detail="Firebase Admin not initialized")
        try:
            decoded = firebase_auth.verify_id_token(body.id_token)
        except firebase_auth.InvalidIdToken as e:
            log.warning("Rejected ID token: %s", e)
            raise HTTPException(status_code=401, detail="Invalid ID token")
        user = find_or_create_user(
            decoded["uid"],
            decoded.get("phone_number"),
            decoded.get("name"),
            decoded.get("email"),
        )

    token = create_token({"uid": user["uid"], "phoneNumber": user.get("phoneNumber", "")})
    return {"success": True, "token": token, "user": public_user(user)}


@app.post("/api/auth/logout")
def logout():
    return {"success": True, "message": "Logged out successfully"}


# ----------------------- Products -----------------------
@app.get("/api/products")
def list_products(vertical: Optional[str] = None, category: Optional[str] = None, search: Optional[str] = None):
    filt = {}
    if vertical:
        filt["vertical"] = vertical
    if category:
        filt["category"] = category
    if search:
        pattern = re.escape(search)
        filt["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    items = get_db()["product"].find(filt).limit(100)
    return [serialize_doc(i) for i in items]


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    item = get_db()["product"].find_one({"id": product_id})
    if not item:
        raise HTTPException(status_code=404, detail="Product not found")
    return serialize_doc(item)


@app.post("/api/products", status_code=201)
def create_product(body: ProductSchema):
    products = get_db()["product"]
    create_document("product", body)
    return serialize_doc(products.find_one({"id": body.id}))


@app.put("/api/products/{product_id}")
def update_product(product_id: str, body: ProductUpdateBody):
    update = dump(body)
    update["updatedAt"] = datetime.now(timezone.utc)
    item = get_db()["product"].find_one_and_update(
        {"id": product_id}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    if not item:
        raise HTTPException(status_code=404, detail="Product not found")
    return serialize_doc(item)


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str):
    res = get_db()["product"].delete_one({"id": product_id})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"success": True, "message": "Product deleted"}


# ----------------------- Orders -----------------------
@app.get("/api/orders")
def list_orders(user=Depends(get_current_user)):
    items = get_db()["order"].find({"userId": user["uid"]}).sort("date", DESCENDING)
    return [serialize_doc(i) for i in items]


@app.post("/api/orders", status_code=201)
def create_order(body: OrderCreateBody, user=Depends(get_current_user)):
    orders = get_db()["order"]
    order = OrderSchema(
        id=new_order_id(),
        user_id=user["uid"],
        items=body.items,
        total=body.total,
        delivery_address=body.delivery_address,
        payment_mode=body.payment_mode,
        status="confirmed",
        date=datetime.now(timezone.utc),
    )
    create_document("order", order)
    log.info("Order %s placed by %s", order.id, user["uid"])
    return serialize_doc(orders.find_one({"id": order.id}))


@app.put("/api/orders/{order_id}")
def update_order_status(order_id: str, body: OrderStatusBody, user=Depends(get_current_user)):
    orders = get_db()["order"]
    current = orders.find_one({"id": order_id, "userId": user["uid"]})
    if not current:
        raise HTTPException(status_code=404, detail="Order not found")
    if not can_transition(current["status"], body.status):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid status transition from {current['status']} to {body.status}",
        )
    order = orders.find_one_and_update(
        {"id": order_id, "userId": user["uid"]},
        {"$set": {"status": body.status, "updatedAt": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER,
    )
    return serialize_doc(order)


@app.delete("/api/orders/{order_id}")
def cancel_order(order_id: str, user=Depends(get_current_user)):
    res = get_db()["order"].delete_one({"id": order_id, "userId": user["uid"]})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Order not found")
    return {"success": True, "message": "Order cancelled"}


# ----------------------- Users -----------------------
def update_user(uid: str, update: dict) -> dict:
    user = get_db()["user"].find_one_and_update(
        {"uid": uid}, update, return_document=ReturnDocument.AFTER
    )
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return serialize_doc(user)


@app.get("/api/users/profile")
def get_profile(user=Depends(get_current_user)):
    doc = get_db()["user"].find_one({"uid": user["uid"]})
    if not doc:
        raise HTTPException(status_code=404, detail="User not found")
    return serialize_doc(doc)


@app.put("/api/users/profile")
def update_profile(body: ProfileUpdateBody, user=Depends(get_current_user)):
    update = dump(body)
    update["updatedAt"] = datetime.now(timezone.utc)
    return update_user(user["uid"], {"$set": update})


@app.get("/api/users/wishlist")
def get_wishlist(user=Depends(get_current_user)):
    doc = get_db()["user"].find_one({"uid": user["uid"]})
    if not doc:
        raise HTTPException(status_code=404, detail="User not found")
    return doc.get("wishlist", [])


@app.post("/api/users/wishlist/add")
def add_to_wishlist(body: WishlistBody, user=Depends(get_current_user)):
    return update_user(user["uid"], {"$addToSet": {"wishlist": body.product_id}})


@app.post("/api/users/wishlist/remove")
def remove_from_wishlist(body: WishlistBody, user=Depends(get_current_user)):
    return update_user(user["uid"], {"$pull": {"wishlist": body.product_id}})


@app.post("/api/users/upgrade-seller")
def upgrade_seller(body: UpgradeSellerBody, user=Depends(get_current_user)):
    return update_user(user["uid"], {
        "$set": {
            "role": "seller",
            "sellerProfile": dump(body.seller_profile),
            "updatedAt": datetime.now(timezone.utc),
        }
    })


# ----------------------- Assistant -----------------------
@app.post("/api/assistant")
def ask_assistant(body: AssistantBody):
    products = list(get_db()["product"].find({}).limit(100))
    return {"reply": assistant.generate_assistant_response(body.prompt, products)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
