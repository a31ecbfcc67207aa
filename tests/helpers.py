"""Direct reads of the test database, bypassing the application."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from bankbridge.models.bank import ConnectedBank, User


def stored_banks(engine, user_id: str) -> list[ConnectedBank]:
    """All ConnectedBank rows for an external user id."""
    with Session(engine) as session:
        return list(
            session.scalars(
                select(ConnectedBank)
                .join(User, ConnectedBank.user_pk == User.id)
                .where(User.user_id == user_id)
            ).all()
        )


def stored_user(engine, user_id: str) -> User | None:
    with Session(engine) as session:
        return session.scalar(select(User).where(User.user_id == user_id))
