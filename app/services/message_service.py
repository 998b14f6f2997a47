# services/message_service.py
import logging
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.db import transaction
from app.models.schemas.message import (
    MessageCreateModel,
    MessageFrame,
    MessageResponseModel,
    MessageWithUserModel,
)
from app.repositories.message_repo import MessageRepository
from app.services.chat_registry import ChatRoomRegistry
from app.services.group_service import GroupService

logger = logging.getLogger(__name__)


class MessageService:
    def __init__(self, db: Session, registry: Optional[ChatRoomRegistry] = None):
        self.db = db
        self.message_repo = MessageRepository(db)
        self.group_service = GroupService(db)
        self.registry = registry

    async def post_message(
        self, group_id: str, user_id: str, message_data: MessageCreateModel
    ) -> MessageResponseModel:
        """
        Persists a chat message, then pushes it to the group's live sockets.

        Only members may post. Delivery is best-effort: once the message is
        stored the sender gets success regardless of the fan-out outcome.
        """
        message = await run_in_threadpool(self.store_message, group_id, user_id, message_data)

        frame = MessageFrame(group_id=group_id, message=message)
        delivered = 0
        if self.registry is not None:
            delivered = await self.registry.broadcast(group_id, frame.to_wire())
        logger.debug("Message %s delivered to %d sockets", message.message_id, delivered)

        return MessageResponseModel.model_validate(message.model_dump())

    def store_message(
        self, group_id: str, user_id: str, message_data: MessageCreateModel
    ) -> MessageWithUserModel:
        self.group_service.require_membership(group_id, user_id)

        try:
            with transaction(self.db):
                db_message = self.message_repo.create_message(
                    group_id=group_id, user_id=user_id, content=message_data.content
                )
                return MessageWithUserModel.model_validate(db_message)
        except SQLAlchemyError as e:
            logger.error("Failed to store message for group %s: %s", group_id, e)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to send message",
            )

    def get_history(self, group_id: str, user_id: str) -> list[MessageWithUserModel]:
        self.group_service.require_membership(group_id, user_id)
        return [
            MessageWithUserModel.model_validate(m)
            for m in self.message_repo.get_messages_for_group(group_id)
        ]
