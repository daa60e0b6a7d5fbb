from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from ..engine import LineItem, OrderRequest, PersistedOrder
from ..engine.models import parse_datetime
from . import state

app = FastAPI(
    title="Offer Engine API",
    description="Offer matching, discount allocation and order totals",
    version="1.0.0"
)

# Enable CORS for the storefront and admin frontends
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


class LineItemIn(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=0)
    unit_price: Optional[float] = Field(None, ge=0)
    variant_id: Optional[str] = None
    is_free: bool = False
    line_id: Optional[str] = None
    variant_attributes: Optional[dict[str, str]] = None


class PersistedOrderIn(BaseModel):
    """Fields stored on an existing order. Offer fields may be JSON strings."""
    applied_offers: Any = None
    free_items: Any = None
    total: Optional[float] = None
    discount_type: Optional[str] = None
    discount_value: Optional[float] = None
    total_after_discount: Optional[float] = None


class EvaluateRequest(BaseModel):
    items: list[LineItemIn]
    user_type: Optional[str] = None
    lang: str = "ar"
    now: Optional[datetime] = None
    persisted: Optional[PersistedOrderIn] = None


@app.get("/")
async def root():
    return {"status": "online", "message": "Offer Engine API Active"}


@app.get("/offers")
async def get_live_offers():
    try:
        return jsonable_encoder([offer.to_dict() for offer in state.engine.live_offers()])
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/products/{product_id}/offers")
async def get_product_offers(product_id: str, user_type: Optional[str] = None):
    try:
        applied = state.engine.offers_for_product(product_id, user_type=user_type)
        return jsonable_encoder([entry.to_dict() for entry in applied])
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/orders/evaluate")
async def evaluate_order(req: EvaluateRequest):
    if not req.items:
        raise HTTPException(status_code=400, detail="Order has no line items")
    try:
        persisted = None
        if req.persisted is not None:
            persisted = PersistedOrder.from_record(req.persisted.model_dump())

        now = parse_datetime(req.now)

        request = OrderRequest(
            items=[LineItem(**item.model_dump()) for item in req.items],
            user_type=req.user_type,
            now=now,
            lang=req.lang,
            persisted=persisted,
        )
        summary = state.engine.evaluate(request)
        return jsonable_encoder(summary.to_dict())
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/system/reload")
async def reload_catalog():
    engine = state.reload_engine()
    return {"offers_count": len(engine.offers)}
