"""
Quotes API - FastAPI router for sharing, viewing, confirming and cancelling quotes.
"""
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response
from pydantic import BaseModel, ConfigDict

from ..lifecycle.view_model import build_view_model
from ..engine.models import QuoteStatus
from ..sharing.serializer import parse_timestamp
from ..services.quote_service import QuoteService
from .state import get_quote_service

router = APIRouter(prefix="/api", tags=["quotes"])

NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}


# Pydantic models for API
class QuoteItemIn(BaseModel):
    """One row as the client sends it; numbers may arrive as strings."""
    model_config = ConfigDict(extra="allow")

    service: str = ""
    option: str = ""
    qty: Any = 1
    price: Any = 0
    subtotal: Any = None
    overridden: Any = False


class QuotePayloadIn(BaseModel):
    """Quote payload with the stored key names."""
    model_config = ConfigDict(extra="allow")

    quoteInfo: str = ""
    customer: str = ""
    phone: str = ""
    address: str = ""
    technician: str = ""
    techPhone: str = ""
    cleanTime: str = ""
    otherNotes: str = ""
    items: list[QuoteItemIn] = []
    total: Any = None
    cloudinaryId: Optional[str] = None


class PriceRequest(BaseModel):
    """Request model for repricing a set of rows."""
    items: list[QuoteItemIn] = []


class LockRequest(BaseModel):
    id: str = ""


class CancelRequest(BaseModel):
    id: str = ""
    reason: Optional[str] = ""


class ShareResponse(BaseModel):
    id: str
    shareUrl: Optional[str]
    key: str
    url: Optional[str]


def require_admin(
    x_admin_token: Optional[str] = Header(None),
    service: QuoteService = Depends(get_quote_service),
) -> None:
    """Cancel is admin-only; enforced only when QUOTE_ADMIN_TOKEN is configured."""
    expected = service.settings.admin_token
    if expected and x_admin_token != expected:
        raise HTTPException(status_code=403, detail="Admin token required")


# Endpoints

@router.post("/price")
async def price_items(request: PriceRequest, service: QuoteService = Depends(get_quote_service)):
    """Reprice rows without persisting anything."""
    return service.price([item.model_dump() for item in request.items])


@router.post("/share", response_model=ShareResponse)
async def create_share(payload: QuotePayloadIn, service: QuoteService = Depends(get_quote_service)):
    """Persist a quote and return its share link."""
    body = payload.model_dump(exclude={'cloudinaryId'})
    return service.create_share(body)


@router.get("/share")
async def read_share(cid: str, response: Response, service: QuoteService = Depends(get_quote_service)):
    """Raw quote data for a cid (read-only page)."""
    response.headers.update(NO_STORE)
    return service.fetch_share(cid)['data']


@router.get("/view")
async def view_quote(
    id: str,
    response: Response,
    admin: bool = False,
    service: QuoteService = Depends(get_quote_service),
):
    """Quote data plus lifecycle status and the actions this viewer may take."""
    response.headers.update(NO_STORE)
    view = service.fetch_share(id)
    vm = build_view_model(
        QuoteStatus(view['status']),
        admin=admin,
        cancel_reason=view['cancelReason'],
        cancelled_at=parse_timestamp(view['cancelledAt']),
    )
    view['actions'] = sorted(action.value for action in vm.actions)
    view['banner'] = vm.banner
    view['notice'] = vm.notice
    return view


@router.post("/confirm")
async def confirm_quote(payload: QuotePayloadIn, service: QuoteService = Depends(get_quote_service)):
    """Customer confirmation: notifications only; the client locks separately."""
    return service.confirm(payload.model_dump(exclude_none=True))


@router.post("/lock")
async def lock_quote(request: LockRequest, service: QuoteService = Depends(get_quote_service)):
    """Set locked=1 on the record (idempotent)."""
    return service.lock(request.id)


@router.post("/cancel", dependencies=[Depends(require_admin)])
async def cancel_quote(
    request: CancelRequest,
    response: Response,
    service: QuoteService = Depends(get_quote_service),
):
    """Admin cancel with an optional reason (idempotent, terminal)."""
    response.headers.update(NO_STORE)
    return service.cancel(request.id, request.reason)
