# services/user_service.py
import logging

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.db import transaction
from app.models.orm.user import UserORM
from app.models.schemas.user import UserPreferencesModel, UserUpsertModel
from app.repositories.user_repo import UserRepository

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, db: Session):
        self.db = db
        self.user_repo = UserRepository(db)

    def get_user(self, user_id: str) -> UserORM:
        user = self.user_repo.get_user(user_id)
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"User {user_id} not found.",
            )
        return user

    def upsert_user(self, user_id: str, user_data: UserUpsertModel) -> UserORM:
        try:
            with transaction(self.db):
                user = self.user_repo.upsert_user(user_id, user_data)
        except IntegrityError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid profile data: {str(e).splitlines()[0]}",
            )
        return user

    def update_preferences(self, user_id: str, preferences: UserPreferencesModel) -> UserORM:
        user = self.get_user(user_id)
        with transaction(self.db):
            self.user_repo.update_preferences(user, preferences)
        logger.info("Updated preferences for user %s (%d topics)", user_id, len(user.topics))
        return user
