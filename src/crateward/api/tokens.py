"""API token routes — /me/tokens.

- GET /me/tokens → list the caller's tokens (values never included)
- POST /me/tokens → issue a token (value returned once!)
- DELETE /me/tokens/:id → revoke; always succeeds

Tokens can only be minted from a browser session: a request authenticated
by an API token may not create another one.
"""

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from crateward.auth.dependencies import CurrentIdentity, get_current_user
from crateward.config import settings
from crateward.db.engine import get_db
from crateward.errors import Forbidden, ValidationFailure
from crateward.schemas.token import (
    ApiTokenCreate,
    ApiTokenCreatedResponse,
    ApiTokenList,
)
from crateward.services.token_service import ApiTokenService

router = APIRouter(prefix="/me/tokens")


def _svc(db: AsyncSession = Depends(get_db)) -> ApiTokenService:
    return ApiTokenService(db)


@router.get("", response_model=ApiTokenList)
async def list_tokens(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ApiTokenService = Depends(_svc),
):
    tokens = await svc.list_for_user(identity.user.id)
    return {"api_tokens": tokens}


@router.post("", response_model=ApiTokenCreatedResponse, status_code=201)
async def create_token(
    request: Request,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ApiTokenService = Depends(_svc),
):
    """Issue a new API token for the logged-in user."""
    if identity.via_token:
        raise Forbidden("cannot use an API token to create a new API token")

    # Body is read by hand so the size check runs before any parsing
    body = await request.body()
    max_size = settings.max_token_request_bytes
    if len(body) > max_size:
        raise ValidationFailure(f"max content length is: {max_size}, was {len(body)}")
    try:
        payload = ApiTokenCreate.model_validate_json(body)
    except ValidationError as e:
        raise ValidationFailure(f"invalid new token request: {e.errors()[0]['msg']}")

    api_token = await svc.insert(identity.user.id, payload.name)
    return {"api_token": api_token}


@router.delete("/{token_id}")
async def revoke_token(
    token_id: int,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ApiTokenService = Depends(_svc),
):
    await svc.revoke(identity.user.id, token_id)
    return {}
