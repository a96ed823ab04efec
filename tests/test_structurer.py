"""Tests for LLM structuring and language detection."""

import httpx
import openai
import pytest

from conftest import FakeChatClient
from lecture_ingest.errors import AuthError, EmptyLLMResponse
from lecture_ingest.language import detect_language, language_name
from lecture_ingest.retry import RetryPolicy
from lecture_ingest.structurer import STRUCTURING_PROMPT, TRUNCATION_MARKER, TextStructurer

TURKISH = "Bu derste hücre zarının yapısını ve işlevini inceleyeceğiz. Zar çok önemli bir yapıdır ve bu konu sınavda var."
ENGLISH = "In this lecture we look at the structure of the cell membrane and the role it plays in transport."
GERMAN = "In dieser Vorlesung geht es um die Zellmembran und die Rolle, die sie für den Transport spielt. Das ist nicht einfach."


def no_wait_policy(retries=2):
    return RetryPolicy(max_retries=retries, base_delay=0.0, sleep=lambda _: None)


class TestLanguageDetection:
    @pytest.mark.parametrize("text, expected", [(TURKISH, "tr"), (ENGLISH, "en"), (GERMAN, "de")])
    def test_detects_common_languages(self, text, expected):
        assert detect_language(text) == expected

    def test_undecidable_text(self):
        assert detect_language("") is None
        assert detect_language("12345 67890") is None

    def test_language_names(self):
        assert language_name("tr") == "Turkish"
        assert language_name("pt") == "pt"
        assert language_name(None) is None


class TestTextStructurer:
    def test_structures_with_title_and_language(self):
        client = FakeChatClient(["# Hücre Zarı\n\n## Yapı\n\n- Fosfolipit çift katman"])
        structurer = TextStructurer(client, model="gpt-4o-mini", retry_policy=no_wait_policy())

        result = structurer.structure(TURKISH, "Biyoloji 101")

        assert result.structured_text.startswith("# Hücre Zarı")
        assert result.detected_language == "Turkish"
        request = client.requests[0]
        assert request["model"] == "gpt-4o-mini"
        assert request["messages"][0] == {"role": "system", "content": STRUCTURING_PROMPT}
        user = request["messages"][1]["content"]
        assert 'Lecture Title: "Biyoloji 101"' in user
        assert "Detected language: Turkish" in user
        assert user.endswith(TURKISH)

    def test_language_hint_overrides_detection(self):
        client = FakeChatClient()
        result = TextStructurer(client, retry_policy=no_wait_policy()).structure(ENGLISH, "Biology", language_hint="de")
        assert result.detected_language == "German"

    def test_long_input_is_truncated_with_marker(self):
        client = FakeChatClient()
        structurer = TextStructurer(client, max_input_chars=30000, retry_policy=no_wait_policy())

        structurer.structure("a" * 40000, "Long lecture")

        user = client.requests[0]["messages"][1]["content"]
        transcript = user.split("Transcription:\n\n", 1)[1]
        assert len(transcript) == 30000 + len(TRUNCATION_MARKER)
        assert transcript.endswith("[Note: Transcription was truncated due to length]")

    def test_input_at_ceiling_is_untouched(self):
        structurer = TextStructurer(FakeChatClient(), max_input_chars=100)
        assert structurer.prepare_input("b" * 100) == "b" * 100

    def test_empty_response_is_retried_then_fails(self):
        client = FakeChatClient(["", "   ", None])
        structurer = TextStructurer(client, retry_policy=no_wait_policy(retries=2))

        with pytest.raises(EmptyLLMResponse, match="LLM returned empty response"):
            structurer.structure(ENGLISH, "Biology")
        assert len(client.requests) == 3

    def test_empty_response_then_success(self):
        client = FakeChatClient(["", "# Notes"])
        result = TextStructurer(client, retry_policy=no_wait_policy()).structure(ENGLISH, "Biology")
        assert result.structured_text == "# Notes"

    def test_authentication_error_fails_fast(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        error = openai.AuthenticationError("bad key", response=httpx.Response(401, request=request), body=None)
        client = FakeChatClient([error, "# never reached"])

        with pytest.raises(AuthError):
            TextStructurer(client, retry_policy=no_wait_policy()).structure(ENGLISH, "Biology")
        assert len(client.requests) == 1

    def test_missing_client(self):
        with pytest.raises(AuthError, match="LLM_API_KEY"):
            TextStructurer(None).structure(ENGLISH, "Biology")
