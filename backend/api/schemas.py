"""
Pydantic schemas for FastAPI endpoints
"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


class ExpansionInterceptSummary(BaseModel):
    trigger: str
    type: str
    priority: str


class ExpansionSummary(BaseModel):
    """One entry of the expansion list"""
    id: str
    name: str
    description: str = ""
    icon: Optional[str] = None
    intercepts: List[ExpansionInterceptSummary] = []


class ExpansionListResponse(BaseModel):
    expansions: List[ExpansionSummary]


class ExecuteExpansionRequest(BaseModel):
    """Body of POST /api/expansions/execute (camelCase, as sent by the web client)"""
    extension_id: str = Field(..., alias="extensionId")
    action: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    context: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


class ExpansionActionResponse(BaseModel):
    success: bool
    data: Any = None
    message: Optional[str] = None


class SettingsUpdateRequest(BaseModel):
    """Each top-level key of expansionSettings replaces the stored one"""
    signature: Optional[str] = None
    expansion_settings: Optional[Dict[str, Any]] = Field(None, alias="expansionSettings")

    model_config = ConfigDict(populate_by_name=True)


class SendEmailRequest(BaseModel):
    to: List[str] = Field(..., min_length=1)
    subject: str = ""
    body: str = ""
    cc: List[str] = Field(default_factory=list)
    bcc: List[str] = Field(default_factory=list)
    in_reply_to: Optional[str] = Field(None, alias="inReplyTo")
    is_html: bool = Field(False, alias="isHtml")

    model_config = ConfigDict(populate_by_name=True)


class ReceivedEmailRequest(BaseModel):
    """Notification that a new email arrived for the current user"""
    email_id: str = Field(..., alias="emailId")
    subject: Optional[str] = None
    content: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class RecipientsRequest(BaseModel):
    to: List[str] = Field(default_factory=list)
    cc: List[str] = Field(default_factory=list)
    bcc: List[str] = Field(default_factory=list)


class RecipientsResponse(BaseModel):
    to: List[str] = []
    cc: List[str] = []
    bcc: List[str] = []


class SecureMessageRequest(BaseModel):
    subject: str = ""
    content: str = Field(..., min_length=1)

