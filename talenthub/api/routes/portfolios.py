from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.api.deps import get_current_user
from talenthub.db.session import get_db
from talenthub.models import User
from talenthub.schemas.common import Ack, Envelope
from talenthub.schemas.portfolio import (
    CreatePortfolioIn,
    PortfolioOut,
    PortfolioRefIn,
    PublicPortfolioOut,
    SlugIn,
    UpdatePortfolioIn,
)
from talenthub.services import portfolio_service

router = APIRouter(prefix="/portfolios", tags=["portfolios"])


@router.post("/list", response_model=Envelope[list[PortfolioOut]])
async def list_portfolios(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[list[PortfolioOut]]:
    portfolios = await portfolio_service.list_portfolios(db, current_user.id)
    return Envelope(data=[PortfolioOut.model_validate(item, from_attributes=True) for item in portfolios])


@router.post("/create", response_model=Envelope[PortfolioOut])
async def create_portfolio(
    payload: CreatePortfolioIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[PortfolioOut]:
    portfolio = await portfolio_service.create_portfolio(
        db, current_user.id, payload.name, payload.title, payload.summary
    )
    return Envelope(data=PortfolioOut.model_validate(portfolio, from_attributes=True))


@router.post("/update", response_model=Envelope[PortfolioOut])
async def update_portfolio(
    payload: UpdatePortfolioIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[PortfolioOut]:
    portfolio = await portfolio_service.get_owned_portfolio(db, payload.id, current_user.id)
    portfolio = await portfolio_service.update_portfolio(
        db, portfolio, name=payload.name, title=payload.title, summary=payload.summary
    )
    return Envelope(data=PortfolioOut.model_validate(portfolio, from_attributes=True))


@router.post("/delete", response_model=Ack)
async def delete_portfolio(
    payload: PortfolioRefIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Ack:
    portfolio = await portfolio_service.get_owned_portfolio(db, payload.id, current_user.id)
    await portfolio_service.delete_portfolio(db, portfolio)
    return Ack(message="Portfolio deleted")


@router.post("/get-by-slug", response_model=Envelope[PublicPortfolioOut])
async def get_by_slug(payload: SlugIn, db: AsyncSession = Depends(get_db)) -> Envelope[PublicPortfolioOut]:
    portfolio, owner_display_name = await portfolio_service.get_by_slug(db, payload.slug)
    out = PublicPortfolioOut.model_validate(portfolio, from_attributes=True)
    out.owner_display_name = owner_display_name
    return Envelope(data=out)
