from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class SessionRequest(BaseModel):
    """POST /session body: either a usage log or a signed model."""
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    mode: Optional[str] = None
    token: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None
    word_count: int = Field(0, alias="wordCount")
    model: Optional[str] = None


class ImageRequest(BaseModel):
    token: Optional[str] = None
    description: Optional[str] = None


class ManageUpdateRequest(BaseModel):
    """Settings form; an omitted flag means unchecked."""
    model_config = ConfigDict(populate_by_name=True)

    token: Optional[str] = None
    show_transcription: bool = Field(False, alias="showTranscription")
    show_paralanguage: bool = Field(False, alias="showParalanguage")
    show_image: bool = Field(False, alias="showImage")
