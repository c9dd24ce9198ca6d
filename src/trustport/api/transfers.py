from fastapi import APIRouter, Depends, HTTPException

from ..errors import AttemptNotFound
from ..logging_config import get_logger
from ..transfers import TransferResult
from .deps import get_services
from .schemas import OtpIn, PinIn, TransferIn

logger = get_logger("trustport.api.transfers")

router = APIRouter(tags=["transfers"])


def _or_404(result: TransferResult) -> TransferResult:
    if result.error == AttemptNotFound.code:
        raise HTTPException(status_code=404, detail=result.message)
    return result


@router.post("/transfers", response_model=TransferResult)
async def start_transfer(payload: TransferIn, services=Depends(get_services)):
    """
    Begin a transfer. Small amounts settle right away; otherwise the result
    asks for a PIN or an OTP and carries the attempt id to answer with.
    """
    logger.info(
        "Transfer request sender=%s recipient=%s amount=%s channel=%s",
        payload.sender_id,
        payload.recipient,
        payload.amount,
        payload.channel.value,
    )
    return await services.transfers.start(
        sender_id=payload.sender_id,
        recipient=payload.recipient,
        amount=payload.amount,
        channel=payload.channel,
        contact=payload.contact,
    )


@router.get("/transfers/{attempt_id}", response_model=TransferResult)
async def get_transfer(attempt_id: str, services=Depends(get_services)):
    return _or_404(await services.transfers.status(attempt_id))


@router.post("/transfers/{attempt_id}/pin", response_model=TransferResult)
async def submit_pin(attempt_id: str, payload: PinIn, services=Depends(get_services)):
    return _or_404(await services.transfers.submit_pin(attempt_id, payload.pin))


@router.post("/transfers/{attempt_id}/otp", response_model=TransferResult)
async def submit_otp(attempt_id: str, payload: OtpIn, services=Depends(get_services)):
    return _or_404(await services.transfers.submit_otp(attempt_id, payload.code))


@router.post("/transfers/{attempt_id}/otp/resend", response_model=TransferResult)
async def resend_otp(attempt_id: str, services=Depends(get_services)):
    return _or_404(await services.transfers.resend_otp(attempt_id))


@router.post("/transfers/{attempt_id}/cancel", response_model=TransferResult)
async def cancel_transfer(attempt_id: str, services=Depends(get_services)):
    return _or_404(await services.transfers.cancel(attempt_id))
