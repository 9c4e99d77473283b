"""Unit tests for the chat gateway."""

import json
from unittest.mock import Mock

from botocore.exceptions import ClientError

from legislator_worker.chat import (
    ChatGateway,
    ChatTurn,
    FALLBACK_REPLIES,
    build_system_prompt,
    encode_sse,
    smooth_stream,
    sse_events,
    to_bedrock_messages,
)
from legislator_worker.config import BedrockConfig, SiteConfig
from legislator_worker.tools import ToolResult


def tool_use_response(name="latestNews", tool_input=None, tool_use_id="t1"):
    return {
        "stopReason": "tool_use",
        "output": {
            "message": {
                "role": "assistant",
                "content": [{"toolUse": {"toolUseId": tool_use_id, "name": name, "input": tool_input or {}}}],
            }
        },
        "usage": {"totalTokens": 10},
    }


def text_response(text):
    return {
        "stopReason": "end_turn",
        "output": {"message": {"role": "assistant", "content": [{"text": text}]}},
        "usage": {"totalTokens": 5},
    }


def make_registry():
    registry = Mock()
    registry.tool_config.return_value = {"tools": []}
    registry.execute.return_value = ToolResult("1. news")
    return registry


USER_MESSAGES = [{"role": "user", "content": [{"text": "最新新聞？"}]}]


class TestChatGatewayUnit:
    """Unit tests for ChatGateway.run_turn."""

    def test_tool_loop_then_answer(self):
        bedrock = Mock()
        bedrock.converse.side_effect = [tool_use_response(), text_response("這是最新新聞")]
        registry = make_registry()

        turn = ChatGateway(bedrock, BedrockConfig(max_steps=5)).run_turn(USER_MESSAGES, "sys", registry)

        assert turn.text == "這是最新新聞"
        assert turn.steps == 2
        assert turn.stop_reason == "end_turn"
        assert turn.tool_calls == ["latestNews"]
        registry.execute.assert_called_once_with("latestNews", {})

        second_call = bedrock.converse.call_args_list[1].kwargs
        tool_result = second_call["messages"][-1]["content"][0]["toolResult"]
        assert tool_result == {"toolUseId": "t1", "content": [{"text": "1. news"}], "status": "success"}
        assert second_call["system"] == [{"text": "sys"}]

    def test_step_bound(self):
        """A model that always asks for tools stops after max_steps calls."""
        bedrock = Mock()
        bedrock.converse.side_effect = lambda **kwargs: tool_use_response()
        registry = make_registry()

        turn = ChatGateway(bedrock, BedrockConfig(max_steps=3)).run_turn(USER_MESSAGES, "sys", registry)

        assert bedrock.converse.call_count == 3
        assert turn.steps == 3
        assert turn.stop_reason == "max_steps"
        assert turn.text == FALLBACK_REPLIES["zh-TW"]

    def test_unknown_tool_reported_to_model(self):
        from legislator_worker.errors import UnknownToolError

        bedrock = Mock()
        bedrock.converse.side_effect = [tool_use_response(name="rm"), text_response("ok")]
        registry = make_registry()
        registry.execute.side_effect = UnknownToolError("rm")

        turn = ChatGateway(bedrock, BedrockConfig()).run_turn(USER_MESSAGES, "sys", registry)

        tool_result = bedrock.converse.call_args_list[1].kwargs["messages"][-1]["content"][0]["toolResult"]
        assert tool_result["status"] == "error"
        assert turn.text == "ok"

    def test_bedrock_error_returns_fallback(self):
        bedrock = Mock()
        bedrock.converse.side_effect = ClientError(
            {"Error": {"Code": "ThrottlingException", "Message": "slow down"}}, "Converse"
        )

        turn = ChatGateway(bedrock, BedrockConfig()).run_turn(
            [{"role": "user", "content": [{"text": "hello"}]}], "sys", make_registry()
        )

        assert turn.stop_reason == "error"
        assert turn.text == FALLBACK_REPLIES["en"]


class TestChatHelpersUnit:
    """Unit tests for message conversion and SSE encoding."""

    def test_to_bedrock_messages(self):
        messages = [
            {"role": "assistant", "content": "greeting before user"},
            {"role": "system", "content": "ignored"},
            {"role": "user", "parts": [{"type": "text", "text": "hi"}, {"type": "image", "url": "x"}]},
            {"role": "user", "content": "again"},
            {"role": "assistant", "content": [{"type": "text", "text": "hello"}]},
            {"role": "user", "content": "   "},
            "junk",
        ]

        assert to_bedrock_messages(messages) == [
            {"role": "user", "content": [{"text": "hi\n\nagain"}]},
            {"role": "assistant", "content": [{"text": "hello"}]},
        ]

    def test_system_prompt_includes_page(self):
        prompt = build_system_prompt("/zh-TW/docs/x", SiteConfig(site_url="https://site.example"))
        assert "current page: https://site.example/zh-TW/docs/x" in prompt
        assert "searchNews" in prompt

    def test_smooth_stream_cjk(self):
        assert list(smooth_stream(["你好 world ", "ok"])) == ["你", "好", " world ", "ok"]

    def test_sse_events(self):
        turn = ChatTurn(text="hi", steps=2, stop_reason="end_turn", tool_calls=["viewPage"])

        events = list(sse_events(turn))

        assert events[0] == encode_sse({"type": "start"})
        assert json.loads(events[1][len("data: "):]) == {"type": "tool-call", "toolName": "viewPage"}
        assert json.loads(events[2][len("data: "):]) == {"type": "text-delta", "delta": "hi"}
        assert json.loads(events[3][len("data: "):]) == {"type": "finish", "finishReason": "end_turn"}
        assert events[-1] == "data: [DONE]\n\n"
