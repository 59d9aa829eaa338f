"""
Main orchestrator: input normalizer -> prompt builder -> model gateway -> response normalizer.

Every channel (web client, browser extension, messaging bots, CLI) goes
through FactCheckPipeline so they all get the same normalized results.
"""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Dict, Iterable, List, Optional, TypeVar, Union

from .audio import AudioPlayer, PlaybackHandle
from .errors import EmptyInputError, StaleResponseError
from .gateway import ChatHandle, GeminiGateway
from .inputs import RawContent, normalize_input
from .languages import Language, resolve_language
from .models import AnalysisOutcome, AnalysisResult, Channel, NewsItem
from .normalizer import (
    BOT_POLICY,
    WEB_POLICY,
    normalize_analysis_response,
    normalize_news,
    normalize_translation,
)
from .prompts import AnalyzeTask, ChatTask, NewsTask, SpeechTask, TranslateTask, build_request
from . import config

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChatSession:
    """A follow-up conversation bound to one displayed result. Never reused for another result."""

    def __init__(self, handle: ChatHandle, language: Language, context: Optional[AnalysisResult] = None):
        self._handle = handle
        self.language = language
        self.context = context
        self.closed = False

    async def send(self, message: str) -> str:
        if self.closed:
            raise RuntimeError("Chat session has been closed")
        text = (message or "").strip()
        if not text:
            raise EmptyInputError("Please enter a message.")
        return await self._handle.send(text)

    def close(self) -> None:
        self.closed = True
        self._handle = None


class RequestSequencer:
    """
    Issues monotonically increasing request tokens and discards stale responses.

    When a newer request has been issued while an older one was awaiting the
    model, the older response is rejected instead of overwriting newer state.
    """

    def __init__(self):
        self._latest = 0

    @property
    def latest(self) -> int:
        return self._latest

    def issue(self) -> int:
        self._latest += 1
        return self._latest

    def is_latest(self, token: int) -> bool:
        return token == self._latest

    async def run_latest(self, awaitable: Awaitable[T]) -> T:
        token = self.issue()
        result = await awaitable
        if not self.is_latest(token):
            logger.info(f"Discarding stale response for request {token} (latest is {self._latest})")
            raise StaleResponseError(token, self._latest)
        return result


class FactCheckPipeline:
    """Runs every model task and returns normalized results."""

    def __init__(self, gateway: Optional[GeminiGateway] = None):
        self.gateway = gateway or GeminiGateway()

    async def analyze(
        self,
        content: RawContent,
        language: Union[str, Language] = Language.EN,
        channel: Channel = Channel.WEB,
        caption: Optional[str] = None,
    ) -> AnalysisOutcome:
        """
        Fact-check one piece of content.

        Args:
            content: Text, a URL (string or reference), or a MediaPayload.
            language: Language for the natural-language result fields.
            channel: WEB keeps every grounding source; BOT drops social media
                and keeps at most three.
            caption: Optional text accompanying media.

        Returns:
            An AnalysisOutcome. Malformed model output still yields a complete
            result built from fallbacks.

        Raises:
            EmptyInputError: before any model call, when there is nothing to analyze.
            UpstreamError / QuotaExceededError: the model call failed.
        """
        request = normalize_input(content, language, caption=caption)
        logger.info(f"Analyzing {request.content_kind.value} content for channel '{channel.value}' "
                    f"in '{request.target_language.value}'")
        model_request = build_request(AnalyzeTask(request=request, channel=channel))
        response = await self.gateway.generate(model_request)
        policy = BOT_POLICY if channel == Channel.BOT else WEB_POLICY
        return normalize_analysis_response(response, policy)

    async def translate(self, result: AnalysisResult, language: Union[str, Language]) -> AnalysisResult:
        target = resolve_language(language)
        logger.info(f"Translating result into '{target.value}'")
        response = await self.gateway.generate(build_request(TranslateTask(result=result, target_language=target)))
        return normalize_translation(response, result)

    async def translate_many(
        self,
        result: AnalysisResult,
        languages: Iterable[Union[str, Language]],
    ) -> Dict[Language, AnalysisResult]:
        """Translate one result into several languages concurrently."""
        targets: List[Language] = []
        for language in languages:
            target = resolve_language(language)
            if target not in targets:
                targets.append(target)
        translated = await asyncio.gather(*(self.translate(result, t) for t in targets))
        return dict(zip(targets, translated))

    async def fetch_news(
        self,
        language: Union[str, Language] = Language.EN,
        category: str = "Trending",
        count: int = config.DEFAULT_NEWS_COUNT,
    ) -> List[NewsItem]:
        task = NewsTask(language=resolve_language(language), category=category, count=count)
        response = await self.gateway.generate(build_request(task))
        items = normalize_news(response, count)
        logger.info(f"Fetched {len(items)} '{category}' news items")
        return items

    def start_chat(
        self,
        language: Union[str, Language] = Language.EN,
        context: Optional[AnalysisResult] = None,
    ) -> ChatSession:
        target = resolve_language(language)
        handle = self.gateway.start_chat(build_request(ChatTask(language=target, context=context)))
        return ChatSession(handle, target, context)

    def stream_speech(self, text: str) -> AsyncIterator[str]:
        spoken = (text or "").strip()
        if not spoken:
            raise EmptyInputError("There is no text to read aloud.")
        return self.gateway.stream_speech(build_request(SpeechTask(text=spoken)))

    async def speak(self, text: str, player: AudioPlayer) -> PlaybackHandle:
        """Stream speech for text into the player, replacing whatever it was playing."""
        return await player.play(self.stream_speech(text))
