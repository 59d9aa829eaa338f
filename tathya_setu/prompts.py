"""
Prompt templates and the request builder for every model task.

Each task kind is a small pydantic model; `build_request` turns one into a
ModelRequest (instruction text, ordered content parts, output schema and tool
directives). Nothing here touches the network.
"""

import json
from typing import Callable, Dict, Literal, Optional, Type, Union

from langchain_core.prompts import PromptTemplate
from pydantic import BaseModel, Field

from . import config
from .languages import Language, language_name
from .models import (
    AnalysisRequest,
    AnalysisResult,
    Channel,
    ContentKind,
    ContentPart,
    ModelRequest,
    TaskKind,
    Verdict,
)

# --- Output schemas ---

_STRING = {"type": "STRING"}

FACT_CHECK_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "claim": _STRING,
        "claimant": _STRING,
        "factCheckerName": _STRING,
        "rating": _STRING,
        "date": _STRING,
        "url": _STRING,
    },
}

CITED_SOURCE_SCHEMA = {
    "type": "OBJECT",
    "properties": {"title": _STRING, "url": _STRING},
    "required": ["url"],
}

ANALYSIS_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "verdict": {"type": "STRING", "enum": [v.value for v in Verdict]},
        "confidence": {"type": "NUMBER"},
        "summary": _STRING,
        "detailedAnalysis": _STRING,
        "keyPoints": {"type": "ARRAY", "items": _STRING},
        "existingFactChecks": {"type": "ARRAY", "items": FACT_CHECK_SCHEMA},
        "citedSources": {"type": "ARRAY", "items": CITED_SOURCE_SCHEMA},
    },
    "required": ["verdict", "confidence", "summary", "detailedAnalysis", "keyPoints"],
}

# Bot replies never show detailedAnalysis, so the model is not forced to write it.
BOT_ANALYSIS_SCHEMA = {
    **ANALYSIS_SCHEMA,
    "required": ["verdict", "confidence", "summary", "keyPoints"],
}

NEWS_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "title": _STRING,
            "snippet": _STRING,
            "source": _STRING,
            "url": _STRING,
            "publishedTime": _STRING,
        },
        "required": ["title", "url"],
    },
}

# --- Templates ---

ANALYSIS_TEMPLATE = PromptTemplate.from_template(
    """Analyze the submitted content for misinformation and answer with JSON.
Write every natural-language value in {language_name}.
Keep the JSON keys and the verdict values exactly as they are written below.

Instructions:
1. Use Google Search to verify the content.
2. Be EXTREMELY CONCISE.
3. Output fields:
   - verdict: TRUE/FALSE/MISLEADING/UNVERIFIED/SATIRE
   - confidence: a number from 0 to 100
   - summary: ONE short sentence.
   - detailedAnalysis: at most 2 sentences explaining why.
   - keyPoints: an array of at most 3 short bullet points.
   - existingFactChecks: published fact-checks of the same claim, if any, each with claim, claimant, factCheckerName, rating, date and url.
   - citedSources: the pages you relied on, each with title and url.
{channel_rules}"""
)

BOT_CHANNEL_RULES = """4. Find and cite at least 3 distinct, reliable sources (major news, government, academic).
5. Do not cite social media threads (Reddit, Twitter/X, Facebook, Instagram)."""

TRANSLATION_TEMPLATE = PromptTemplate.from_template(
    """Translate the values of the JSON object below into {language_name}.
Maintain the JSON structure exactly. Do not translate keys (like 'verdict', 'confidence') and do not change the verdict value.
Only translate the string values for 'summary', 'detailedAnalysis', the items in the 'keyPoints' array, and the 'claim' and 'rating' text of any 'existingFactChecks' entries."""
)

CHAT_PERSONA_TEMPLATE = PromptTemplate.from_template(
    "You are a friendly and expert AI assistant specializing in media literacy, fact-checking, "
    "and misinformation detection. You explain complex concepts simply. "
    "Keep your answers concise and helpful. Reply in {language_name}."
)

CHAT_CONTEXT_TEMPLATE = PromptTemplate.from_template(
    """

The user is asking questions about a specific analysis you just performed.
Here is the context of that analysis:
Verdict: {verdict}
Summary: {summary}
Detailed Analysis: {detailed_analysis}

Please answer the user's follow-up questions based on this context."""
)

NEWS_TEMPLATE = PromptTemplate.from_template(
    """Find {count} "news.google.com" links for "{category}" news in {region}.
{language_preference}

Return a JSON array where every item has title, snippet (one short sentence), source (the publisher), url and publishedTime.
If there is no direct article link, use https://news.google.com/search?q=<title> as the url."""
)


# --- Task variants ---

class AnalyzeTask(BaseModel):
    kind: Literal["analyze"] = "analyze"
    request: AnalysisRequest
    channel: Channel = Channel.WEB


class TranslateTask(BaseModel):
    kind: Literal["translate"] = "translate"
    result: AnalysisResult
    target_language: Language


class ChatTask(BaseModel):
    kind: Literal["chat"] = "chat"
    language: Language = Language.EN
    context: Optional[AnalysisResult] = None


class NewsTask(BaseModel):
    kind: Literal["news"] = "news"
    language: Language = Language.EN
    category: str = "Trending"
    count: int = Field(config.DEFAULT_NEWS_COUNT, ge=1, le=20)


class SpeechTask(BaseModel):
    kind: Literal["speech"] = "speech"
    text: str
    voice_name: str = config.GEMINI_TTS_VOICE


TaskSpec = Union[AnalyzeTask, TranslateTask, ChatTask, NewsTask, SpeechTask]


def news_region(language: Language, category: str) -> str:
    """Any Indian-language feed is Indian news; English follows the category."""
    if language != Language.EN:
        return "India"
    if category.strip().lower() == "india":
        return "India"
    return "Global"


def _content_parts(request: AnalysisRequest) -> list:
    parts = []
    if request.content_kind == ContentKind.MEDIA:
        parts.append(ContentPart(inline_data=request.media))
        description = "Analyze the attached media."
        if request.text_body:
            description += f'\nCaption: "{request.text_body}"'
        parts.append(ContentPart(text=description))
    elif request.content_kind == ContentKind.URL:
        parts.append(ContentPart(text=f"Verify this link: {request.text_body}"))
    else:
        parts.append(ContentPart(text=f'Text: "{request.text_body}"'))
    return parts


def build_analyze_request(task: AnalyzeTask) -> ModelRequest:
    is_bot = task.channel == Channel.BOT
    instruction = ANALYSIS_TEMPLATE.format(
        language_name=language_name(task.request.target_language),
        channel_rules=BOT_CHANNEL_RULES if is_bot else "",
    ).rstrip()
    return ModelRequest(
        task=TaskKind.ANALYZE,
        instruction_text=instruction,
        parts=_content_parts(task.request),
        output_schema=BOT_ANALYSIS_SCHEMA if is_bot else ANALYSIS_SCHEMA,
        enable_search_grounding=True,
    )


def build_translate_request(task: TranslateTask) -> ModelRequest:
    instruction = TRANSLATION_TEMPLATE.format(language_name=language_name(task.target_language))
    payload = json.dumps(task.result.to_json_dict(), ensure_ascii=False)
    return ModelRequest(
        task=TaskKind.TRANSLATE,
        instruction_text=instruction,
        parts=[ContentPart(text=f"JSON to translate:\n{payload}")],
        output_schema=ANALYSIS_SCHEMA,
        enable_search_grounding=False,
    )


def build_chat_request(task: ChatTask) -> ModelRequest:
    instruction = CHAT_PERSONA_TEMPLATE.format(language_name=language_name(task.language))
    if task.context is not None:
        instruction += CHAT_CONTEXT_TEMPLATE.format(
            verdict=task.context.verdict.value,
            summary=task.context.summary,
            detailed_analysis=task.context.detailed_analysis,
        )
    return ModelRequest(task=TaskKind.CHAT, instruction_text=instruction)


def build_news_request(task: NewsTask) -> ModelRequest:
    name = language_name(task.language)
    if task.language == Language.EN:
        preference = f"Prefer articles in {name}."
    else:
        preference = f"Prefer articles in {name} if available, otherwise English."
    instruction = NEWS_TEMPLATE.format(
        count=task.count,
        category=task.category,
        region=news_region(task.language, task.category),
        language_preference=preference,
    )
    return ModelRequest(
        task=TaskKind.NEWS,
        instruction_text=instruction,
        output_schema=NEWS_SCHEMA,
        enable_search_grounding=True,
    )


def build_speech_request(task: SpeechTask) -> ModelRequest:
    return ModelRequest(
        task=TaskKind.SPEECH,
        instruction_text=task.text,
        audio_output=True,
        voice_name=task.voice_name,
    )


_BUILDERS: Dict[Type[BaseModel], Callable[..., ModelRequest]] = {
    AnalyzeTask: build_analyze_request,
    TranslateTask: build_translate_request,
    ChatTask: build_chat_request,
    NewsTask: build_news_request,
    SpeechTask: build_speech_request,
}


def build_request(task: TaskSpec) -> ModelRequest:
    """Build the model request for any task variant."""
    try:
        builder = _BUILDERS[type(task)]
    except KeyError:
        raise TypeError(f"Unknown task type: {type(task).__name__}") from None
    return builder(task)
