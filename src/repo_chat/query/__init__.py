"""Query gating and the answer backend client."""

from repo_chat.query.answer_client import AnswerBackendClient
from repo_chat.query.gateway import QueryGateway, new_conversation_id

__all__ = ["AnswerBackendClient", "QueryGateway", "new_conversation_id"]
