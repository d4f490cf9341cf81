"""Partner info routes."""

import uuid

from fastapi import APIRouter

from ..dependencies import Session
from ..schemas import Envelope, envelope
from ..schemas.user import PartnerResponse
from ..services.consents import get_partner

router = APIRouter()


@router.get("/{partner_id}", response_model=Envelope[PartnerResponse])
async def read_partner(partner_id: uuid.UUID, session: Session) -> Envelope:
    partner = await get_partner(session, partner_id)
    return envelope(PartnerResponse.model_validate(partner))
