# repositories/user_repo.py
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.orm.user import UserORM
from app.models.schemas.user import UserPreferencesModel, UserUpsertModel


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: str) -> Optional[UserORM]:
        return self.db.get(UserORM, user_id)

    def get_match_candidates(self, exclude_user_id: str) -> list[UserORM]:
        """
        Every user other than ``exclude_user_id`` with a non-empty topic list,
        in a stable (user id) order.

        Topic emptiness is checked in Python since JSON array length is not
        portable across dialects.
        """
        stmt = (
            select(UserORM)
            .where(UserORM.user_id != exclude_user_id)
            .order_by(UserORM.user_id)
        )
        return [user for user in self.db.scalars(stmt).all() if user.topics]

    def upsert_user(self, user_id: str, user_data: UserUpsertModel) -> UserORM:
        user = self.get_user(user_id)
        if user is None:
            user = UserORM(user_id=user_id, topics=[], preferred_languages=[])
            self.db.add(user)

        for key, value in user_data.model_dump(exclude_unset=True).items():
            setattr(user, key, value)

        self.db.flush()
        return user

    def update_preferences(
        self, user: UserORM, preferences: UserPreferencesModel
    ) -> UserORM:
        for key, value in preferences.model_dump(exclude_unset=True).items():
            # Nullable text vs. non-null list columns
            if value is None and key != "learning_goals":
                continue
            setattr(user, key, value)

        self.db.flush()
        return user
