"""Verification API router — thin HTTP adapter over the verification service.

Endpoints
---------
POST /api/v1/verifications/send     → issue and dispatch a code
POST /api/v1/verifications/verify   → validate a submitted code
GET  /api/v1/verifications/stats    → aggregate counts
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from phone_verification.config import settings, verification_config
from phone_verification.database.engine import get_session
from phone_verification.models.verification import VerificationPurpose
from phone_verification.services.sms_gateway import SMSGateway, build_sms_gateway
from phone_verification.services.verification_service import PhoneVerificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/verifications", tags=["verifications"])

# Shared gateway (created once, reused across requests)
_sms_gateway = build_sms_gateway(settings)


def get_sms_gateway() -> SMSGateway:
    return _sms_gateway


def get_verification_service(
    session: AsyncSession = Depends(get_session),
    sms_gateway: SMSGateway = Depends(get_sms_gateway),
) -> PhoneVerificationService:
    return PhoneVerificationService(session, sms_gateway, verification_config)


# ── Request / response models ────────────────────────────

class SendCodeRequest(BaseModel):
    phone_number: str = Field(..., min_length=1, max_length=32)
    purpose: VerificationPurpose
    user_id: str | None = None


class VerifyCodeRequest(BaseModel):
    phone_number: str = Field(..., min_length=1, max_length=32)
    code: str = Field(..., min_length=1, max_length=12)
    purpose: VerificationPurpose


class VerificationResponse(BaseModel):
    success: bool
    message: str


class StatsResponse(BaseModel):
    total: int
    successful: int
    expired: int
    failed: int
    success_rate: float


# ── Endpoints ────────────────────────────────────────────

@router.post("/send", response_model=VerificationResponse)
async def send_code(
    body: SendCodeRequest,
    request: Request,
    service: PhoneVerificationService = Depends(get_verification_service),
):
    """Issue a verification code for the given phone number and purpose."""
    result = await service.send_verification_code(
        body.phone_number,
        body.purpose,
        user_id=body.user_id,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return VerificationResponse(success=result.success, message=result.message)


@router.post("/verify", response_model=VerificationResponse)
async def verify_code(
    body: VerifyCodeRequest,
    request: Request,
    service: PhoneVerificationService = Depends(get_verification_service),
):
    """Validate a submitted verification code."""
    result = await service.verify_code(
        body.phone_number,
        body.code,
        body.purpose,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return VerificationResponse(success=result.success, message=result.message)


@router.get("/stats", response_model=StatsResponse)
async def verification_stats(
    phone_number: str | None = Query(None, description="Phone in E.164 format"),
    purpose: VerificationPurpose | None = Query(None),
    service: PhoneVerificationService = Depends(get_verification_service),
):
    """Aggregate verification counts, optionally filtered."""
    stats = await service.get_verification_stats(phone_number, purpose)
    return StatsResponse(
        total=stats.total,
        successful=stats.successful,
        expired=stats.expired,
        failed=stats.failed,
        success_rate=stats.success_rate,
    )


def _client_ip(request: Request) -> str | None:
    """Caller IP used for the per-IP quota.

    ``X-Forwarded-For`` is only honoured when the immediate peer is listed
    in ``settings.trusted_proxies``; otherwise the header is ignored.
    """
    peer = request.client.host if request.client else None
    if peer is None or peer not in settings.trusted_proxies:
        return peer

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or peer
    return peer
