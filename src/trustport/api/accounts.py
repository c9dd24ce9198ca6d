from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from ..domain import Channel
from ..errors import AccountNotFound, DuplicateAccount
from ..history import DateRange
from ..logging_config import get_logger
from .deps import get_services
from .schemas import AccountCreate, AccountOut, SuggestionOut, TransactionOut
from .serializers import serialize_account, serialize_suggestion, serialize_tx

logger = get_logger("trustport.api.accounts")

router = APIRouter(tags=["accounts"])


@router.post("/accounts", response_model=AccountOut, status_code=201)
async def create_account(payload: AccountCreate, services=Depends(get_services)):
    """
    Register a new account with the starting balance.
    """
    logger.info("Creating account username=%s", payload.username)
    try:
        account = await services.directory.register(
            username=payload.username,
            email=payload.email,
            account_number=payload.account_number,
            phone_number=payload.phone_number,
        )
    except DuplicateAccount as e:
        logger.warning("Account creation rejected username=%s: %s", payload.username, e.message)
        raise HTTPException(status_code=409, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return serialize_account(account)


@router.get("/accounts/{account_id}", response_model=AccountOut)
async def get_account(account_id: str, services=Depends(get_services)):
    """
    Fetch a single account by id.
    """
    try:
        account = await services.directory.get(account_id)
    except AccountNotFound:
        logger.warning("Account not found account_id=%s", account_id)
        raise HTTPException(status_code=404, detail="Account not found")
    return serialize_account(account)


@router.get("/accounts/{account_id}/suggest", response_model=List[SuggestionOut])
async def suggest_recipients(account_id: str, q: str = "", limit: int = 5, services=Depends(get_services)):
    """
    Recipient autocomplete; never includes the caller.
    """
    matches = await services.directory.suggest(q, exclude_id=account_id, limit=limit)
    return [serialize_suggestion(a) for a in matches]


@router.get("/accounts/{account_id}/transactions", response_model=List[TransactionOut])
async def get_account_transactions(
    account_id: str,
    channel: Optional[Channel] = None,
    q: Optional[str] = None,
    range: Optional[DateRange] = None,
    services=Depends(get_services),
):
    """
    Transactions where the account is sender or recipient, newest first.
    """
    logger.info("Fetching transactions for account_id=%s channel=%s q=%s range=%s", account_id, channel, q, range)
    try:
        await services.directory.get(account_id)
    except AccountNotFound:
        raise HTTPException(status_code=404, detail="Account not found")

    records = await services.history.list_for(account_id, channel=channel, search=q, date_range=range)
    return [serialize_tx(r, account_id) for r in records]
