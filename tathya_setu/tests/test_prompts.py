"""
Tests for the prompt builder.
"""

import json
import re
import unittest

from tathya_setu.inputs import normalize_input
from tathya_setu.languages import LANGUAGE_NAMES, Language
from tathya_setu.models import Channel, ContentKind, MediaPayload, TaskKind
from tathya_setu.normalizer import normalize_analysis
from tathya_setu.prompts import (
    ANALYSIS_SCHEMA,
    BOT_ANALYSIS_SCHEMA,
    NEWS_SCHEMA,
    AnalyzeTask,
    ChatTask,
    NewsTask,
    SpeechTask,
    TranslateTask,
    build_request,
    news_region,
)


def sample_result():
    return normalize_analysis({
        "verdict": "FALSE",
        "confidence": 92,
        "summary": "Moon landing is confirmed real.",
        "detailedAnalysis": "Multiple independent sources confirm Apollo missions.",
        "keyPoints": ["Retroreflectors are still used."],
    })


def instructions_for(language):
    request = normalize_input("Drinking hot water cures the flu", language)
    return {
        "analyze-web": build_request(AnalyzeTask(request=request)).instruction_text,
        "analyze-bot": build_request(AnalyzeTask(request=request, channel=Channel.BOT)).instruction_text,
        "translate": build_request(TranslateTask(result=sample_result(), target_language=language)).instruction_text,
        "chat": build_request(ChatTask(language=language)).instruction_text,
        "chat-context": build_request(ChatTask(language=language, context=sample_result())).instruction_text,
        "news": build_request(NewsTask(language=language)).instruction_text,
    }


class TestLanguageInstructions(unittest.TestCase):
    """Every instruction names the target language by display name, once."""

    def test_display_name_appears_exactly_once(self):
        for language, name in LANGUAGE_NAMES.items():
            for task, text in instructions_for(language).items():
                with self.subTest(language=language.value, task=task):
                    self.assertEqual(len(re.findall(rf"\b{name}\b", text)), 1, text)

    def test_raw_code_never_used(self):
        for language in Language:
            for task, text in instructions_for(language).items():
                with self.subTest(language=language.value, task=task):
                    self.assertIsNone(re.search(rf"\b{re.escape(language.value)}\b", text), text)


class TestAnalyzeRequest(unittest.TestCase):

    def test_text_request(self):
        request = build_request(AnalyzeTask(request=normalize_input("The moon landing was faked")))
        self.assertEqual(request.task, TaskKind.ANALYZE)
        self.assertTrue(request.enable_search_grounding)
        self.assertFalse(request.audio_output)
        self.assertEqual(request.output_schema, ANALYSIS_SCHEMA)
        self.assertEqual([p.text for p in request.parts], ['Text: "The moon landing was faked"'])

    def test_url_request(self):
        request = build_request(AnalyzeTask(request=normalize_input({"type": "url", "value": "https://t.co/abc"})))
        self.assertEqual(request.parts[0].text, "Verify this link: https://t.co/abc")

    def test_media_request_places_binary_first(self):
        media = MediaPayload(data=b"\xff\xd8\xff", mime_type="image/jpeg")
        analysis_request = normalize_input(media, caption="Is this photo real?")
        self.assertEqual(analysis_request.content_kind, ContentKind.MEDIA)
        request = build_request(AnalyzeTask(request=analysis_request))
        self.assertEqual(len(request.parts), 2)
        self.assertEqual(request.parts[0].inline_data.data, b"\xff\xd8\xff")
        self.assertIn("Is this photo real?", request.parts[1].text)

    def test_bot_channel_rules(self):
        request = build_request(AnalyzeTask(request=normalize_input("claim"), channel=Channel.BOT))
        self.assertIn("at least 3 distinct", request.instruction_text)
        self.assertIn("social media", request.instruction_text)
        self.assertEqual(request.output_schema, BOT_ANALYSIS_SCHEMA)
        self.assertNotIn("detailedAnalysis", BOT_ANALYSIS_SCHEMA["required"])

    def test_web_channel_has_no_bot_rules(self):
        request = build_request(AnalyzeTask(request=normalize_input("claim")))
        self.assertNotIn("social media", request.instruction_text)

    def test_schema_shape(self):
        self.assertEqual(ANALYSIS_SCHEMA["properties"]["verdict"]["enum"],
                         ["TRUE", "FALSE", "MISLEADING", "UNVERIFIED", "SATIRE"])
        self.assertEqual(set(ANALYSIS_SCHEMA["required"]),
                         {"verdict", "confidence", "summary", "detailedAnalysis", "keyPoints"})


class TestOtherTasks(unittest.TestCase):

    def test_translate_carries_result_without_grounding(self):
        request = build_request(TranslateTask(result=sample_result(), target_language=Language.HI))
        self.assertFalse(request.enable_search_grounding)
        self.assertEqual(request.output_schema, ANALYSIS_SCHEMA)
        payload = json.loads(request.parts[0].text.split("\n", 1)[1])
        self.assertEqual(payload["verdict"], "FALSE")
        self.assertEqual(payload["detailedAnalysis"], "Multiple independent sources confirm Apollo missions.")

    def test_chat_has_no_schema(self):
        request = build_request(ChatTask(language=Language.TA))
        self.assertEqual(request.task, TaskKind.CHAT)
        self.assertIsNone(request.output_schema)
        self.assertFalse(request.parts)

    def test_chat_context(self):
        text = build_request(ChatTask(context=sample_result())).instruction_text
        self.assertIn("Verdict: FALSE", text)
        self.assertIn("Summary: Moon landing is confirmed real.", text)
        self.assertIn("Detailed Analysis: Multiple independent sources confirm Apollo missions.", text)

    def test_news_request(self):
        request = build_request(NewsTask(language=Language.BN, category="Technology", count=5))
        self.assertTrue(request.enable_search_grounding)
        self.assertEqual(request.output_schema, NEWS_SCHEMA)
        self.assertIn("Find 5", request.instruction_text)
        self.assertIn('"Technology" news in India', request.instruction_text)
        self.assertIn("otherwise English", request.instruction_text)

    def test_speech_request(self):
        request = build_request(SpeechTask(text="Verdict: false.", voice_name="Kore"))
        self.assertTrue(request.audio_output)
        self.assertEqual(request.voice_name, "Kore")
        self.assertEqual(request.instruction_text, "Verdict: false.")
        self.assertFalse(request.enable_search_grounding)

    def test_unknown_task(self):
        with self.assertRaises(TypeError):
            build_request("analyze")


class TestNewsRegion(unittest.TestCase):

    def test_non_english_is_always_india(self):
        for language in Language:
            if language == Language.EN:
                continue
            with self.subTest(language=language.value):
                self.assertEqual(news_region(language, "Technology"), "India")

    def test_english_follows_category(self):
        self.assertEqual(news_region(Language.EN, "India"), "India")
        self.assertEqual(news_region(Language.EN, "Trending"), "Global")
        self.assertEqual(news_region(Language.EN, "Sports"), "Global")


if __name__ == "__main__":
    unittest.main()
