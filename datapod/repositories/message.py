"""ConversationMessageRepository: chat messages within a thread."""

from sqlalchemy import select

from datapod.db.models.message import ConversationMessage
from datapod.repositories.base import ProjectionRepository


class ConversationMessageRepository(ProjectionRepository[ConversationMessage]):
    model = ConversationMessage
    family = "conversationMessages"
    subject_type = "conversation_message"
    resource_name = "Message"
    field_map = {
        "threadId": "thread_id",
        "thread_id": "thread_id",
        "role": "role",
        "content": "content",
        "metadata": "metadata_",
        "workspaceId": "workspace_id",
        "workspace_id": "workspace_id",
    }
    summary_fields = ("thread_id", "role")

    def _update_values(self, data: dict) -> dict:
        # Only the body and metadata of a message can change
        values = super()._update_values(data)
        return {k: v for k, v in values.items() if k in ("content", "metadata_")}

    async def list_thread(self, thread_id: str, user_id: str, limit: int = 200) -> list[ConversationMessage]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ConversationMessage)
                .where(ConversationMessage.thread_id == thread_id, ConversationMessage.user_id == user_id)
                .order_by(ConversationMessage.created_at)
                .limit(limit)
            )
            return list(result.scalars().all())
