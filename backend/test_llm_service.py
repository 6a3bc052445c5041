from __future__ import annotations

import asyncio
import base64
import json
import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

from backend import llm_service, settings
from backend.honorific_engine import DetailField, select_relation, update_detail
from backend.prompts import ASSISTANT_EMPTY_ANSWER, ASSISTANT_SERVICE_ERROR
from backend.relations import JointPosition, RelationKind
from backend.tablet_state import TabletSlot


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")])


def _chat_client(create: AsyncMock) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def _image_client(generate: AsyncMock) -> SimpleNamespace:
    return SimpleNamespace(images=SimpleNamespace(generate=generate))


class TestHanjaConversion(unittest.TestCase):
    def setUp(self) -> None:
        patcher = patch.object(settings, "OPENAI_FALLBACK_MODELS", [])
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_success_returns_stripped_text(self) -> None:
        create = AsyncMock(return_value=_completion("  顯考學生府君神位\n"))
        out = asyncio.run(llm_service.convert_to_hanja(_chat_client(create), "현고학생부군신위"))
        self.assertEqual(out, "顯考學生府君神位")
        payload = create.await_args.kwargs
        self.assertEqual(payload["model"], settings.OPENAI_MODEL)
        self.assertIn('Input: "현고학생부군신위"', payload["messages"][1]["content"])

    def test_failure_returns_input(self) -> None:
        create = AsyncMock(side_effect=RuntimeError("network down"))
        out = asyncio.run(llm_service.convert_to_hanja(_chat_client(create), "현비유인김해김씨신위"))
        self.assertEqual(out, "현비유인김해김씨신위")

    def test_empty_answer_returns_input(self) -> None:
        create = AsyncMock(return_value=_completion(""))
        out = asyncio.run(llm_service.convert_to_hanja(_chat_client(create), "현고학생부군신위"))
        self.assertEqual(out, "현고학생부군신위")

    def test_missing_client_returns_input(self) -> None:
        self.assertEqual(asyncio.run(llm_service.convert_to_hanja(None, "현고")), "현고")

    def test_blank_input_skips_call(self) -> None:
        create = AsyncMock()
        self.assertEqual(asyncio.run(llm_service.convert_to_hanja(_chat_client(create), "  ")), "  ")
        create.assert_not_awaited()

    def test_fallback_model_is_tried(self) -> None:
        create = AsyncMock(side_effect=[RuntimeError("overloaded"), _completion("顯考")])
        with patch.object(settings, "OPENAI_FALLBACK_MODELS", ["backup-model"]):
            out = asyncio.run(llm_service.convert_to_hanja(_chat_client(create), "현고", model="main-model"))
        self.assertEqual(out, "顯考")
        self.assertEqual([c.kwargs["model"] for c in create.await_args_list], ["main-model", "backup-model"])


class TestHanjaPrompt(unittest.TestCase):
    def test_hints_are_appended_inside_quotes(self) -> None:
        prompt = llm_service.build_hanja_prompt("현비유인김해김씨신위", ["본관: 김해(金海)", " ", "성씨: 김(金)"])
        self.assertIn('Input: "현비유인김해김씨신위 (참고 정보 - 본관: 김해(金海), 성씨: 김(金))"', prompt)

    def test_no_hints(self) -> None:
        prompt = llm_service.build_hanja_prompt("현고학생부군신위")
        self.assertIn('Input: "현고학생부군신위"', prompt)
        self.assertNotIn("참고 정보", prompt)


class TestSlotConversion(unittest.TestCase):
    def test_partial_failure_keeps_original_for_failed_column(self) -> None:
        slot = select_relation(TabletSlot(), RelationKind.COUPLE_PARENTS)
        slot = update_detail(slot, DetailField.CLAN, "김해(金海)")

        async def create(**payload):
            user = payload["messages"][1]["content"]
            if 'Input: "현비' in user:
                raise RuntimeError("timeout")
            return _completion("顯考學生府君神位")

        with patch.object(settings, "OPENAI_FALLBACK_MODELS", []):
            out = asyncio.run(llm_service.convert_slot_to_hanja(_chat_client(AsyncMock(side_effect=create)), slot))

        self.assertEqual(set(out), {JointPosition.PRIMARY, JointPosition.SECONDARY})
        self.assertEqual(out[JointPosition.PRIMARY], "顯考學生府君神位")
        self.assertEqual(out[JointPosition.SECONDARY], slot.korean_secondary)

    def test_hints_reach_every_column(self) -> None:
        slot = select_relation(TabletSlot(), RelationKind.COUPLE_PARENTS)
        slot = update_detail(slot, DetailField.CLAN, "김해(金海)")
        create = AsyncMock(return_value=_completion("顯"))
        with patch.object(settings, "OPENAI_FALLBACK_MODELS", []):
            asyncio.run(llm_service.convert_slot_to_hanja(_chat_client(create), slot))
        self.assertEqual(create.await_count, 2)
        for call in create.await_args_list:
            self.assertIn("본관: 김해(金海)", call.kwargs["messages"][1]["content"])


class TestAssistant(unittest.TestCase):
    def setUp(self) -> None:
        patcher = patch.object(settings, "OPENAI_FALLBACK_MODELS", [])
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_answer(self) -> None:
        create = AsyncMock(return_value=_completion("김해 김씨는 金海 金氏입니다."))
        self.assertEqual(
            asyncio.run(llm_service.ask_assistant(_chat_client(create), "김해 김씨 한자?")),
            "김해 김씨는 金海 金氏입니다.",
        )

    def test_empty_answer_message(self) -> None:
        create = AsyncMock(return_value=_completion(None))
        self.assertEqual(asyncio.run(llm_service.ask_assistant(_chat_client(create), "질문")), ASSISTANT_EMPTY_ANSWER)

    def test_service_error_message(self) -> None:
        create = AsyncMock(side_effect=ConnectionError("refused"))
        self.assertEqual(asyncio.run(llm_service.ask_assistant(_chat_client(create), "질문")), ASSISTANT_SERVICE_ERROR)
        self.assertEqual(asyncio.run(llm_service.ask_assistant(None, "질문")), ASSISTANT_SERVICE_ERROR)


class TestGlyphImage(unittest.TestCase):
    def test_decodes_base64_payload(self) -> None:
        png = b"\x89PNG\r\n\x1a\nfake"
        generate = AsyncMock(return_value=SimpleNamespace(data=[SimpleNamespace(b64_json=base64.b64encode(png).decode())]))
        out = asyncio.run(llm_service.generate_glyph_image(_image_client(generate), "妣"))
        self.assertEqual(out, png)
        self.assertIn("'妣'", generate.await_args.kwargs["prompt"])
        self.assertEqual(generate.await_args.kwargs["n"], 1)

    def test_failure_returns_none(self) -> None:
        generate = AsyncMock(side_effect=RuntimeError("rate limited"))
        self.assertIsNone(asyncio.run(llm_service.generate_glyph_image(_image_client(generate), "妣")))

    def test_empty_response_returns_none(self) -> None:
        generate = AsyncMock(return_value=SimpleNamespace(data=[]))
        self.assertIsNone(asyncio.run(llm_service.generate_glyph_image(_image_client(generate), "妣")))

    def test_missing_client_returns_none(self) -> None:
        self.assertIsNone(asyncio.run(llm_service.generate_glyph_image(None, "妣")))

    def test_response_format_only_for_dall_e(self) -> None:
        with patch.object(settings, "OPENAI_IMAGE_MODEL", "dall-e-3"):
            self.assertEqual(llm_service._image_request("妣")["response_format"], "b64_json")
        with patch.object(settings, "OPENAI_IMAGE_MODEL", "gpt-image-1"):
            self.assertNotIn("response_format", llm_service._image_request("妣"))


class TestAuditEvents(unittest.TestCase):
    def test_success_event_has_hash_not_text(self) -> None:
        create = AsyncMock(return_value=_completion("顯考"))
        with patch.object(settings, "OPENAI_FALLBACK_MODELS", []), patch.object(
            llm_service.llm_audit_logger, "info"
        ) as audit:
            asyncio.run(llm_service.convert_to_hanja(_chat_client(create), "현고", request_id="req-1"))

        audit.assert_called_once()
        event = json.loads(audit.call_args.args[0])
        self.assertEqual(event["request_id"], "req-1")
        self.assertEqual(event["endpoint"], "hanja_convert")
        self.assertEqual(event["outcome"], "ok")
        self.assertEqual(len(event["input_hash"]), 64)
        self.assertNotIn("현고", audit.call_args.args[0])

    def test_failure_event(self) -> None:
        generate = AsyncMock(side_effect=RuntimeError("boom"))
        with patch.object(llm_service.llm_audit_logger, "info") as audit:
            asyncio.run(llm_service.generate_glyph_image(_image_client(generate), "妣", request_id="g-1"))
        event = json.loads(audit.call_args.args[0])
        self.assertEqual(event["endpoint"], "glyph_image")
        self.assertEqual(event["outcome"], "failed")
        self.assertEqual(event["model_used"], "none")


class TestClientConstruction(unittest.TestCase):
    def test_no_key_means_no_client(self) -> None:
        self.assertEqual(llm_service.build_openai_client(api_key=""), (None, None))

    def test_local_base_url_is_rejected(self) -> None:
        with patch.dict("os.environ", {"OPENAI_BASE_URL": "http://localhost:1234/v1"}):
            self.assertIsNone(llm_service._resolve_openai_base_url())


if __name__ == "__main__":
    unittest.main()
