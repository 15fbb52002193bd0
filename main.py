import json
import logging
import time
import uuid
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import get_current_user, get_optional_user
from config import settings
from conversations import ConversationManager
from counters import CounterService
from database import get_db
from errors import MarketError
from listings import ListingCatalog, listing_detail
from messages import MessageLedger
from schemas import (
    AffiliateClickBody,
    CreateListingBody,
    SchoolAdminBody,
    SendMessageBody,
    StartConversationBody,
    ToggleSaveBody,
    UpdateListingBody,
)
from schools import SchoolAdmins

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)
request_logger = logging.getLogger("market.request")

app = FastAPI(title="Campus Marketplace API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    start = time.time()
    response = await call_next(request)
    response.headers["X-Request-ID"] = req_id
    request_logger.info(json.dumps({
        "request_id": req_id,
        "method": request.method,
        "path": request.url.path,
        "status": response.status_code,
        "duration_ms": int((time.time() - start) * 1000),
    }))
    return response


# Error rendering: every failure is {"error": message}
@app.exception_handler(MarketError)
async def market_error_handler(request: Request, exc: MarketError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


@app.exception_handler(ValidationError)
async def model_validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid input"})


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Database error"})


# Components
def get_conversations(db: Database = Depends(get_db)) -> ConversationManager:
    return ConversationManager(db)


def get_ledger(db: Database = Depends(get_db)) -> MessageLedger:
    return MessageLedger(db)


def get_counters(db: Database = Depends(get_db)) -> CounterService:
    return CounterService(db)


def get_catalog(db: Database = Depends(get_db)) -> ListingCatalog:
    return ListingCatalog(db)


@app.get("/")
def read_root():
    return {"message": "Campus Marketplace backend running"}


@app.get("/health")
def health(db: Database = Depends(get_db)):
    try:
        db.command("ping")
        database = "ok"
    except Exception as e:
        database = f"error: {str(e)[:80]}"
    return {"status": "ok", "env": settings.ENV, "database": database}


# Conversations
@app.get("/conversations")
def list_conversations(user_id: str = Depends(get_current_user),
                       conversations: ConversationManager = Depends(get_conversations)):
    return conversations.list(user_id)


@app.post("/conversations", status_code=201)
def start_conversation(body: StartConversationBody, user_id: str = Depends(get_current_user),
                       conversations: ConversationManager = Depends(get_conversations)):
    conversation_id = conversations.find_or_create(user_id, body.recipient_id, body.listing_id, body.initial_message)
    return {"conversationId": conversation_id}


@app.get("/conversations/{conversation_id}")
def get_conversation(conversation_id: str, user_id: str = Depends(get_current_user),
                     conversations: ConversationManager = Depends(get_conversations)):
    return conversations.get(conversation_id, user_id)


# Messages
@app.get("/messages/{conversation_id}")
def list_messages(conversation_id: str, user_id: str = Depends(get_current_user),
                  ledger: MessageLedger = Depends(get_ledger)):
    return ledger.list(conversation_id, user_id)


@app.post("/messages/{conversation_id}", status_code=201)
def send_message(conversation_id: str, body: SendMessageBody, user_id: str = Depends(get_current_user),
                 ledger: MessageLedger = Depends(get_ledger)):
    return ledger.append(conversation_id, user_id, body.content)


# Saved listings
@app.get("/saved")
def list_saved(user_id: str = Depends(get_current_user), counters: CounterService = Depends(get_counters)):
    return counters.list_saved(user_id)


@app.post("/saved")
def toggle_saved(body: ToggleSaveBody, user_id: str = Depends(get_current_user),
                 counters: CounterService = Depends(get_counters)):
    if not body.listing_id:
        raise HTTPException(status_code=400, detail="Missing listingId")
    return {"saved": counters.toggle_save(user_id, body.listing_id)}


# Listings
@app.get("/listings")
def search_listings(type: Optional[str] = None,
                    clothing_type: Optional[str] = Query(None, alias="clothingType"),
                    min_price: Optional[float] = Query(None, alias="minPrice"),
                    max_price: Optional[float] = Query(None, alias="maxPrice"),
                    search: Optional[str] = None,
                    catalog: ListingCatalog = Depends(get_catalog)):
    return catalog.search(type=type, clothing_type=clothing_type, min_price=min_price,
                          max_price=max_price, search=search)


@app.post("/listings", status_code=201)
def create_listing(body: CreateListingBody, user_id: str = Depends(get_current_user),
                   catalog: ListingCatalog = Depends(get_catalog)):
    return catalog.create(user_id, body)


@app.get("/listings/user/{owner_id}")
def listings_by_user(owner_id: str, catalog: ListingCatalog = Depends(get_catalog)):
    return catalog.by_owner(owner_id)


@app.get("/listings/{listing_id}")
def get_listing(listing_id: str, viewer_id: Optional[str] = Depends(get_optional_user),
                catalog: ListingCatalog = Depends(get_catalog),
                counters: CounterService = Depends(get_counters)):
    doc = catalog.get(listing_id)
    doc["viewCount"] = counters.increment_view(doc, viewer_id)
    return listing_detail(doc)


@app.put("/listings/{listing_id}")
def update_listing(listing_id: str, body: UpdateListingBody, user_id: str = Depends(get_current_user),
                   catalog: ListingCatalog = Depends(get_catalog)):
    return catalog.update(listing_id, user_id, body)


@app.delete("/listings/{listing_id}", status_code=204)
def delete_listing(listing_id: str, user_id: str = Depends(get_current_user),
                   catalog: ListingCatalog = Depends(get_catalog)):
    catalog.delete(listing_id, user_id)
    return Response(status_code=204)


@app.post("/listings/{listing_id}/view")
def record_listing_view(listing_id: str, counters: CounterService = Depends(get_counters)):
    return {"success": True, "viewCount": counters.record_view(listing_id)}


@app.get("/listings/{listing_id}/view")
def listing_stats(listing_id: str, counters: CounterService = Depends(get_counters)):
    return counters.stats(listing_id)


# Affiliates
@app.post("/affiliates/click")
def affiliate_click(body: AffiliateClickBody, counters: CounterService = Depends(get_counters)):
    if not body.affiliate_id:
        raise HTTPException(status_code=400, detail="Missing affiliateId")
    counters.record_affiliate_click(body.affiliate_id)
    return {"success": True}


# School admins
@app.get("/schools/{school_id}/admin")
def school_admin_status(school_id: str, user_id: str = Depends(get_current_user),
                        db: Database = Depends(get_db)):
    return SchoolAdmins(db).status(school_id, user_id)


@app.post("/schools/{school_id}/admin")
def change_school_admin(school_id: str, body: SchoolAdminBody, user_id: str = Depends(get_current_user),
                        db: Database = Depends(get_db)):
    admin_ids = SchoolAdmins(db).change(school_id, user_id, body.target_user_id, body.action)
    return {"success": True, "adminIds": admin_ids}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
