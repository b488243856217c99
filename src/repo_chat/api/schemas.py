"""Request bodies of the HTTP API."""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from repo_chat.core.errors import ValidationError
from repo_chat.repositories.ids import RepositoryId


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class StartIndexBody(_Body):
    """Start-index request; either ``repositoryId`` or ``owner`` and ``repo``."""

    repository_id: str | None = Field(None, alias="repositoryId")
    owner: str | None = None
    repo: str | None = None
    credential: str | None = Field(
        None, validation_alias=AliasChoices("credential", "accessToken")
    )
    requester_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("requesterId", "uid")
    )
    branch: str | None = None
    force: bool = False

    def to_repository_id(self) -> RepositoryId:
        if self.repository_id:
            return RepositoryId.parse(self.repository_id)
        if not self.owner:
            raise ValidationError("owner is required when repositoryId is not given", field="owner")
        if not self.repo:
            raise ValidationError("repo is required when repositoryId is not given", field="repo")
        return RepositoryId.for_repository(self.owner, self.repo)


class TrustedIndexBody(_Body):
    owner: str = Field(..., min_length=1)
    repo: str = Field(..., min_length=1)
    branch: str | None = None
    credential: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("credential", "accessToken")
    )
    requester_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("requesterId", "uid")
    )

    def to_repository_id(self) -> RepositoryId:
        return RepositoryId.for_repository(self.owner, self.repo)


class ChatQueryBody(BaseModel):
    """Chat query; content checks happen in the gateway before any state read."""

    repository_id: str | None = Field(None, alias="repositoryId")
    question: str | None = None
    conversation_id: str | None = Field(None, alias="conversationId")

    model_config = ConfigDict(populate_by_name=True)
