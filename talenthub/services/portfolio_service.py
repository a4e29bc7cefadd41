import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.core.errors import CollaboratorFailure, Forbidden, NotFound
from talenthub.core.security import generate_token_key
from talenthub.models import Portfolio, User

logger = logging.getLogger(__name__)

SLUG_ATTEMPTS = 5


async def list_portfolios(db: AsyncSession, user_id: UUID) -> list[Portfolio]:
    stmt = select(Portfolio).where(Portfolio.user_id == user_id).order_by(Portfolio.created_at.desc())
    return list((await db.execute(stmt)).scalars().all())


async def create_portfolio(db: AsyncSession, user_id: UUID, name: str, title: str, summary: str) -> Portfolio:
    for _ in range(SLUG_ATTEMPTS):
        portfolio = Portfolio(
            user_id=user_id, slug=generate_token_key(), name=name.strip(), title=title.strip(), summary=summary.strip()
        )
        db.add(portfolio)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.warning("Portfolio slug collision for user %s, retrying", user_id)
            continue
        await db.refresh(portfolio)
        return portfolio
    raise CollaboratorFailure("Could not allocate a portfolio link")


async def get_owned_portfolio(db: AsyncSession, portfolio_id: UUID, user_id: UUID) -> Portfolio:
    portfolio = await db.get(Portfolio, portfolio_id)
    if portfolio is None:
        raise NotFound("Portfolio not found")
    if portfolio.user_id != user_id:
        raise Forbidden("Not your portfolio")
    return portfolio


async def update_portfolio(
    db: AsyncSession,
    portfolio: Portfolio,
    name: str | None = None,
    title: str | None = None,
    summary: str | None = None,
) -> Portfolio:
    if name is not None:
        portfolio.name = name.strip()
    if title is not None:
        portfolio.title = title.strip()
    if summary is not None:
        portfolio.summary = summary.strip()
    await db.commit()
    await db.refresh(portfolio)
    return portfolio


async def delete_portfolio(db: AsyncSession, portfolio: Portfolio) -> None:
    await db.delete(portfolio)
    await db.commit()


async def get_by_slug(db: AsyncSession, slug: str) -> tuple[Portfolio, str | None]:
    stmt = (
        select(Portfolio, User.display_name)
        .outerjoin(User, User.id == Portfolio.user_id)
        .where(Portfolio.slug == slug)
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        raise NotFound("Portfolio not found")
    return row[0], row[1]
