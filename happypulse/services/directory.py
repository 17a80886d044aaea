# happypulse/services/directory.py
"""User directory: registration, deactivation and derived-state lookups."""
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from happypulse.core.constants import DEPARTMENTS, ROLES
from happypulse.core.errors import NotFound, ValidationFailed
from happypulse.models.user import User, WellnessState


def validate_department(department: str) -> str:
    if department not in DEPARTMENTS:
        raise ValidationFailed.field("department", f"Unknown department '{department}'")
    return department


async def create_user(
    db: AsyncSession,
    *,
    email: str,
    name: str,
    employee_id: str,
    department: str,
    role: str = "employee",
    **profile,
) -> User:
    """Create a user and its wellness state in one unit of work."""
    validate_department(department)
    if role not in ROLES:
        raise ValidationFailed.field("role", f"Unknown role '{role}'")

    user = User(
        email=email.lower(),
        name=name,
        employee_id=employee_id,
        department=department,
        role=role,
        **profile,
    )
    user.wellness = WellnessState()
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        raise ValidationFailed.field("email", "A user with this email or employee id already exists") from e
    return user


async def get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("User not found")
    return user


async def get_state(db: AsyncSession, user_id: int, for_update: bool = False) -> WellnessState:
    stmt = select(WellnessState).where(WellnessState.user_id == user_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    state = result.scalar_one_or_none()
    if state is None:
        raise NotFound("User not found")
    return state


async def list_employees(
    db: AsyncSession,
    departments: Optional[Sequence[str]] = None,
    active_only: bool = True,
    roles: Optional[Sequence[str]] = ("employee",),
) -> List[User]:
    """Users in scope, ordered by id for stable downstream sorts."""
    stmt = select(User)
    if active_only:
        stmt = stmt.where(User.is_active.is_(True))
    if roles:
        stmt = stmt.where(User.role.in_(list(roles)))
    if departments:
        stmt = stmt.where(User.department.in_(list(departments)))
    result = await db.execute(stmt.order_by(User.id))
    return list(result.scalars().all())


async def list_staff(db: AsyncSession, roles: Sequence[str] = ("hr", "admin")) -> List[User]:
    """Active HR/admin recipients for alerts."""
    result = await db.execute(
        select(User).where(User.is_active.is_(True), User.role.in_(list(roles))).order_by(User.id)
    )
    return list(result.scalars().all())
