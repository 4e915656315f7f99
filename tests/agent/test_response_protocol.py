"""Tests for the response protocol parser."""

import json

from kagami.agent.response_protocol import parse_response

HI = {"type": "text", "data": {"text": "hi"}}


class TestWellFormed:

    def test_thoughts_and_chat(self):
        raw = json.dumps([
            {"type": "thought", "content": "one"},
            {"type": "thought", "content": "two"},
            {"type": "chat", "content": [HI]},
        ])
        result = parse_response(raw)
        assert result.thoughts == ("one", "two")
        assert result.reply == (HI,)
        assert result.has_reply
        assert result.diagnostics == ()

    def test_no_chat_item_means_silence(self):
        result = parse_response('[{"type": "thought", "content": "not now"}]')
        assert result.thoughts == ("not now",)
        assert result.reply is None
        assert not result.has_reply

    def test_empty_array(self):
        result = parse_response("[]")
        assert result.thoughts == ()
        assert result.reply is None

    def test_first_chat_wins(self):
        raw = (
            '[{"type":"thought","content":"x"},{"type":"chat","content":[]}, '
            '{"type":"chat","content":[{"type":"text","value":"hi"}]}]'
        )
        result = parse_response(raw)
        assert result.thoughts == ("x",)
        assert result.reply == ()
        assert not result.has_reply
        assert len(result.diagnostics) == 1
        assert "extra chat item" in result.diagnostics[0]

    def test_thoughts_after_chat_still_collected(self):
        raw = json.dumps([
            {"type": "chat", "content": [HI]},
            {"type": "thought", "content": "after"},
        ])
        result = parse_response(raw)
        assert result.thoughts == ("after",)
        assert result.reply == (HI,)


class TestMalformed:

    def test_not_json(self):
        result = parse_response("not json")
        assert result.thoughts == ()
        assert result.reply is None

    def test_json_object_not_array(self):
        result = parse_response('{"type": "chat", "content": []}')
        assert result.thoughts == ()
        assert result.reply is None

    def test_none_and_empty(self):
        assert parse_response(None).reply is None
        assert parse_response("").thoughts == ()

    def test_markdown_fenced_json_is_rejected(self):
        result = parse_response('```json\n[{"type": "thought", "content": "x"}]\n```')
        assert result.thoughts == ()

    def test_wrong_shape_items_skipped(self):
        raw = json.dumps([
            "loose string",
            {"type": "thought", "content": 42},
            {"type": "mystery"},
            {"type": "thought", "content": "kept"},
            {"type": "chat", "content": [HI]},
        ])
        result = parse_response(raw)
        assert result.thoughts == ("kept",)
        assert result.reply == (HI,)
        assert len(result.diagnostics) == 3

    def test_malformed_first_chat_still_claims_the_reply(self):
        raw = json.dumps([
            {"type": "chat", "content": "hi"},
            {"type": "chat", "content": [{"type": "text"}]},
        ])
        result = parse_response(raw)
        assert result.reply is None
        assert not result.has_reply
        assert "reply left empty" in result.diagnostics[0]
        assert "extra chat item" in result.diagnostics[1]

    def test_chat_with_non_object_segments_skipped(self):
        result = parse_response('[{"type": "chat", "content": ["hi"]}]')
        assert result.reply is None
        assert len(result.diagnostics) == 1
