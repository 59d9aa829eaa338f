"""
Pydantic models for structured data input/output and validation.
"""

from enum import Enum
from typing import List, Optional, Dict, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .languages import Language


class Verdict(str, Enum):
    TRUE = "TRUE"
    FALSE = "FALSE"
    MISLEADING = "MISLEADING"
    UNVERIFIED = "UNVERIFIED"
    SATIRE = "SATIRE"


class ContentKind(str, Enum):
    TEXT = "text"
    MEDIA = "media"
    URL = "url"


class Channel(str, Enum):
    """Front end that submitted the content; decides how sources are filtered."""
    WEB = "web"
    BOT = "bot"


class TaskKind(str, Enum):
    ANALYZE = "analyze"
    TRANSLATE = "translate"
    CHAT = "chat"
    NEWS = "news"
    SPEECH = "speech"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# --- Input side ---

class MediaPayload(BaseModel):
    """A binary upload passed to the model as an inline segment."""
    data: bytes = Field(..., description="Raw media bytes.")
    mime_type: str = Field(..., description="MIME type reported by the uploader.")


class UrlReference(BaseModel):
    """A link the user wants verified. The value is never fetched locally."""
    type: Literal["url"] = "url"
    value: str


class AnalysisRequest(BaseModel):
    """Canonical payload produced by the input normalizer."""
    content_kind: ContentKind
    text_body: Optional[str] = Field(None, description="Text, URL, or caption accompanying media.")
    media: Optional[MediaPayload] = None
    target_language: Language = Language.EN

    @model_validator(mode="after")
    def _check_primary_payload(self):
        if self.content_kind == ContentKind.MEDIA:
            if self.media is None:
                raise ValueError("media requests must carry a media payload")
        else:
            if self.media is not None:
                raise ValueError(f"{self.content_kind.value} requests cannot carry media")
            if not self.text_body:
                raise ValueError(f"{self.content_kind.value} requests must carry a text body")
        return self


# --- Normalized results ---

class ExistingFactCheck(_CamelModel):
    """A previously published fact-check of the same claim."""
    claim: str = ""
    claimant: str = ""
    fact_checker_name: str = Field("", alias="factCheckerName")
    rating: str = ""
    date: str = ""
    url: str = ""


class CitedSource(_CamelModel):
    title: str = ""
    url: str


class AnalysisResult(_CamelModel):
    """The verdict shape every channel renders. Only built by the response normalizer."""
    verdict: Verdict
    confidence: int = Field(..., ge=0, le=100)
    summary: str
    detailed_analysis: str = Field(..., alias="detailedAnalysis")
    key_points: List[str] = Field(..., min_length=1, alias="keyPoints")
    existing_fact_checks: Optional[List[ExistingFactCheck]] = Field(None, alias="existingFactChecks")
    cited_sources: Optional[List[CitedSource]] = Field(None, alias="citedSources")

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GroundingSource(BaseModel):
    """A web page the model's search grounding relied on."""
    title: Optional[str] = None
    uri: str


class AnalysisOutcome(BaseModel):
    """Normalized result paired with its filtered grounding sources."""
    result: AnalysisResult
    sources: List[GroundingSource] = Field(default_factory=list)


class NewsItem(_CamelModel):
    title: str
    snippet: str = ""
    source: str = ""
    url: str
    published_time: str = Field("", alias="publishedTime")


# --- Model gateway contract ---

class ContentPart(BaseModel):
    """One ordered segment of a model request: text or inline binary."""
    text: Optional[str] = None
    inline_data: Optional[MediaPayload] = None

    @model_validator(mode="after")
    def _one_segment(self):
        if (self.text is None) == (self.inline_data is None):
            raise ValueError("a content part holds exactly one of text or inline_data")
        return self


class ModelRequest(BaseModel):
    """Everything the gateway needs to call the model; built by the prompt builder."""
    task: TaskKind
    instruction_text: str
    parts: List[ContentPart] = Field(default_factory=list)
    output_schema: Optional[Dict[str, Any]] = None
    enable_search_grounding: bool = False
    audio_output: bool = False
    voice_name: Optional[str] = None


class WebChunk(BaseModel):
    title: Optional[str] = None
    uri: Optional[str] = None


class GroundingChunk(BaseModel):
    web: Optional[WebChunk] = None


class ModelResponse(BaseModel):
    raw_text: Optional[str] = None
    raw_audio_base64: Optional[str] = None
    grounding_chunks: List[GroundingChunk] = Field(default_factory=list)
