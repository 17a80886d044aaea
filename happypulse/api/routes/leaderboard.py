# happypulse/api/routes/leaderboard.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from happypulse.api.deps import get_current_user
from happypulse.api.envelope import ok
from happypulse.db.session import get_db
from happypulse.models.user import User
from happypulse.services import leaderboard

router = APIRouter(prefix="/leaderboard", tags=["Leaderboard"])


@router.get("/happy-coins")
async def happy_coins(
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    department: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Global Happy Coins board, optionally narrowed to one department."""
    return ok(await leaderboard.board(db, current_user, department, page, limit))


@router.get("/department/{department}")
async def department_board(
    department: str,
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(await leaderboard.board(db, current_user, department, page, limit))


@router.get("/user/{user_id}")
async def user_ranking(
    user_id: int,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(await leaderboard.user_ranking(db, user_id))


@router.get("/stats")
async def stats(
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(await leaderboard.stats(db))
