"""
End-to-end tests for FactCheckPipeline with the model gateway mocked.
"""

import asyncio
import json
import unittest
from unittest.mock import AsyncMock, MagicMock

from tathya_setu.errors import EmptyInputError, QuotaExceededError, StaleResponseError
from tathya_setu.gateway import GeminiGateway
from tathya_setu.languages import Language
from tathya_setu.models import (
    Channel,
    GroundingChunk,
    MediaPayload,
    ModelResponse,
    TaskKind,
    Verdict,
    WebChunk,
)
from tathya_setu.normalizer import FALLBACK_SUMMARY, normalize_analysis
from tathya_setu.pipeline import FactCheckPipeline, RequestSequencer

MOON_RESULT = {
    "verdict": "FALSE",
    "confidence": 92,
    "summary": "Moon landing is confirmed real.",
    "detailedAnalysis": "Multiple independent sources confirm Apollo missions.",
    "keyPoints": [
        "Retroreflectors on the moon are used for laser ranging today.",
        "Rock samples link chemically to the moon.",
        "Thousands of engineers corroborate the program.",
    ],
}


def mock_gateway(*responses, side_effect=None):
    gateway = MagicMock()
    if side_effect is not None:
        gateway.generate = AsyncMock(side_effect=side_effect)
    elif len(responses) == 1:
        gateway.generate = AsyncMock(return_value=responses[0])
    else:
        gateway.generate = AsyncMock(side_effect=list(responses))
    return gateway


def web(uri, title="Source"):
    return GroundingChunk(web=WebChunk(title=title, uri=uri))


class TestAnalyze(unittest.IsolatedAsyncioTestCase):

    async def test_moon_landing_claim(self):
        gateway = mock_gateway(ModelResponse(
            raw_text=json.dumps(MOON_RESULT),
            grounding_chunks=[web("https://nasa.gov/apollo", "NASA"), web("https://britannica.com/moon")],
        ))
        pipeline = FactCheckPipeline(gateway)

        outcome = await pipeline.analyze("The moon landing was faked", "en")

        self.assertEqual(outcome.result.verdict, Verdict.FALSE)
        self.assertEqual(outcome.result.confidence, 92)
        self.assertEqual(len(outcome.sources), 2)
        self.assertEqual(outcome.sources[0].title, "NASA")

        request = gateway.generate.call_args.args[0]
        self.assertEqual(request.task, TaskKind.ANALYZE)
        self.assertTrue(request.enable_search_grounding)

    async def test_empty_input_never_reaches_the_model(self):
        gateway = mock_gateway(ModelResponse(raw_text="{}"))
        pipeline = FactCheckPipeline(gateway)

        for raw in ["", "   "]:
            with self.assertRaises(EmptyInputError) as ctx:
                await pipeline.analyze(raw)
            self.assertEqual(str(ctx.exception), "Please enter text, a URL, or upload media to analyze.")
        gateway.generate.assert_not_called()

    async def test_unparsable_output_yields_fallback_result(self):
        gateway = mock_gateway(ModelResponse(raw_text="Sorry, I cannot help with that."))
        outcome = await FactCheckPipeline(gateway).analyze("claim")
        self.assertEqual(outcome.result.verdict, Verdict.UNVERIFIED)
        self.assertEqual(outcome.result.confidence, 0)
        self.assertEqual(outcome.result.summary, FALLBACK_SUMMARY)
        self.assertEqual(outcome.sources, [])

    async def test_bot_channel_filters_and_caps_sources(self):
        chunks = [web("https://www.reddit.com/r/x"), web("https://a.com"), web("https://twitter.com/y"),
                  web("https://a.com"), web("https://b.com"), web("https://c.com"), web("https://d.com")]
        gateway = mock_gateway(ModelResponse(raw_text=json.dumps(MOON_RESULT), grounding_chunks=chunks))

        outcome = await FactCheckPipeline(gateway).analyze("claim", channel=Channel.BOT)

        self.assertEqual([s.uri for s in outcome.sources], ["https://a.com", "https://b.com", "https://c.com"])

    async def test_media_with_caption(self):
        gateway = mock_gateway(ModelResponse(raw_text=json.dumps(MOON_RESULT)))
        media = MediaPayload(data=b"\xff\xd8\xff\xe0", mime_type="image/jpeg")

        await FactCheckPipeline(gateway).analyze(media, "hi", caption="Is this real?")

        request = gateway.generate.call_args.args[0]
        self.assertEqual(request.parts[0].inline_data.mime_type, "image/jpeg")
        self.assertIn("Hindi", request.instruction_text)

    async def test_rate_limited_model_raises_quota_error(self):
        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(side_effect=RuntimeError("429 Too Many Requests"))
        pipeline = FactCheckPipeline(GeminiGateway(client=client))

        with self.assertRaises(QuotaExceededError) as ctx:
            await pipeline.analyze("claim")

        self.assertIn("quota", str(ctx.exception))


class TestTranslate(unittest.IsolatedAsyncioTestCase):

    async def test_translate_many_runs_each_language_once(self):
        original = normalize_analysis(MOON_RESULT)

        async def fake_generate(request):
            translated = dict(MOON_RESULT, summary=f"translated: {request.instruction_text.split(' into ')[1][:5]}",
                              verdict="TRUE")
            return ModelResponse(raw_text=json.dumps(translated))

        gateway = MagicMock()
        gateway.generate = AsyncMock(side_effect=fake_generate)

        results = await FactCheckPipeline(gateway).translate_many(original, ["hi", "bn", "hi"])

        self.assertEqual(set(results), {Language.HI, Language.BN})
        self.assertEqual(gateway.generate.await_count, 2)
        for result in results.values():
            self.assertEqual(result.verdict, Verdict.FALSE)
            self.assertEqual(result.confidence, 92)
        self.assertTrue(results[Language.HI].summary.startswith("translated: Hindi"))


class TestNewsAndChat(unittest.IsolatedAsyncioTestCase):

    async def test_fetch_news(self):
        gateway = mock_gateway(ModelResponse(raw_text=json.dumps([
            {"title": "Monsoon arrives early", "url": "https://example.com/x"},
            {"title": "Markets rally", "url": "https://news.google.com/articles/1"},
        ])))
        items = await FactCheckPipeline(gateway).fetch_news("ta", "Business", count=2)
        self.assertEqual(len(items), 2)
        self.assertTrue(items[0].url.startswith("https://news.google.com/search?q="))
        self.assertIn("India", gateway.generate.call_args.args[0].instruction_text)

    async def test_chat_session(self):
        handle = MagicMock()
        handle.send = AsyncMock(return_value="The photos are authentic.")
        gateway = MagicMock()
        gateway.start_chat.return_value = handle
        context = normalize_analysis(MOON_RESULT)

        session = FactCheckPipeline(gateway).start_chat("mr", context)
        reply = await session.send("  Are the photos real?  ")

        self.assertEqual(reply, "The photos are authentic.")
        handle.send.assert_awaited_once_with("Are the photos real?")
        chat_request = gateway.start_chat.call_args.args[0]
        self.assertIn("Marathi", chat_request.instruction_text)
        self.assertIn("Verdict: FALSE", chat_request.instruction_text)

        with self.assertRaises(EmptyInputError):
            await session.send("  ")
        session.close()
        with self.assertRaises(RuntimeError):
            await session.send("again?")

    def test_empty_speech_text(self):
        with self.assertRaises(EmptyInputError):
            FactCheckPipeline(MagicMock()).stream_speech("  ")


class TestRequestSequencer(unittest.IsolatedAsyncioTestCase):

    async def test_stale_response_is_discarded(self):
        sequencer = RequestSequencer()
        release_first = asyncio.Event()

        async def slow():
            await release_first.wait()
            return "hindi result"

        async def fast():
            return "bengali result"

        first = asyncio.create_task(sequencer.run_latest(slow()))
        await asyncio.sleep(0)
        second = await sequencer.run_latest(fast())
        release_first.set()

        self.assertEqual(second, "bengali result")
        with self.assertRaises(StaleResponseError):
            await first

    async def test_sequential_requests_are_not_stale(self):
        sequencer = RequestSequencer()

        async def value(v):
            return v

        self.assertEqual(await sequencer.run_latest(value(1)), 1)
        self.assertEqual(await sequencer.run_latest(value(2)), 2)
        self.assertEqual(sequencer.latest, 2)
        self.assertTrue(sequencer.is_latest(2))


if __name__ == "__main__":
    unittest.main()
