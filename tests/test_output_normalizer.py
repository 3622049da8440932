"""
Tests for reducing raw model output to a canonical response.

Run with:
$ pytest -q
"""

import json

from doradobet_agent.agent.output_normalizer import (
    find_object_end,
    normalize_output,
    strip_code_fences,
    strip_leftover_blob,
)
from doradobet_agent.core.response import (
    EMPTY_OUTPUT_MESSAGE,
    JsonResponse,
    TextResponse,
    canonical_adapter,
    serialize_response,
    text_response,
    to_wire,
)

SAMPLES = [
    text_response("Hola! ¿Qué deporte te gusta?"),
    canonical_adapter.validate_python(
        {
            "type": "json",
            "data": {
                "message": "Partidos de hoy",
                "upcomingEvents": [
                    {
                        "eventId": "991",
                        "name": "Nacional vs Junior",
                        "startDate": "2026-10-19T20:00:00Z",
                        "sport": "Fútbol",
                        "league": "Liga BetPlay",
                        "category": "Colombia",
                        "url": "https://example.test/sport/futbol/991",
                    }
                ],
                "status": "ok",
            },
        }
    ),
]


def test_fenced_json_after_prose() -> None:
    """A fenced canonical object preceded by prose is extracted."""

    raw = 'Here you go:\n```json\n{"type":"text","data":{"message":"Hola!"}}\n```'
    assert to_wire(normalize_output(raw)) == {"type": "text", "data": {"message": "Hola!"}}


def test_empty_output_becomes_apology() -> None:
    """Empty or whitespace-only output yields the fixed apology."""

    for raw in ("", "   \n\t", None):
        result = normalize_output(raw)
        assert isinstance(result, TextResponse)
        assert result.data.message == EMPTY_OUTPUT_MESSAGE


def test_idempotent_on_canonical_input() -> None:
    """Normalizing an already canonical serialization returns an equal value."""

    for response in SAMPLES:
        once = normalize_output(serialize_response(response))
        assert once == response
        assert normalize_output(serialize_response(once)) == once


def test_fence_without_language_tag() -> None:
    """Plain ``` fences are stripped too."""

    raw = '```\n{"type": "text", "data": {"message": "ok"}}\n```'
    assert normalize_output(raw) == text_response("ok")
    assert strip_code_fences(raw) == '{"type": "text", "data": {"message": "ok"}}'


def test_braces_inside_strings_do_not_end_object() -> None:
    """The brace scanner ignores braces and escaped quotes inside string literals."""

    payload = {
        "type": "json",
        "data": {
            "message": 'Usa {llaves} y "comillas" }',
            "liveEvents": [{"eventId": 7, "name": "A vs B"}],
        },
    }
    raw = "Claro, aquí tienes: " + json.dumps(payload, ensure_ascii=False) + " ¡Suerte!"

    result = normalize_output(raw)
    assert isinstance(result, JsonResponse)
    assert result.data.message == 'Usa {llaves} y "comillas" }'
    assert result.data.live_events is not None
    assert result.data.live_events[0].event_id == "7"


def test_find_object_end_handles_escapes() -> None:
    """Escaped quotes inside strings do not toggle string state."""

    obj = '{"a":"}\\"{"}'
    assert find_object_end(obj + " tail", 0) == len(obj)
    assert find_object_end('{"a": {"b": 1}', 0) is None


def test_plain_prose_is_wrapped() -> None:
    """Prose without any structured object becomes a text response."""

    result = normalize_output("  Hoy no hay partidos de la NBA.  ")
    assert result == text_response("Hoy no hay partidos de la NBA.")


def test_invalid_blob_is_stripped_from_prose() -> None:
    """A discriminated object that fails validation is removed from the surrounding text."""

    raw = 'Hola {"type": "text", "data": "oops"} chao'
    result = normalize_output(raw)
    assert isinstance(result, TextResponse)
    assert "oops" not in result.data.message
    assert result.data.message.startswith("Hola")
    assert result.data.message.endswith("chao")


def test_truncated_blob_is_cut_to_end() -> None:
    """A structured object that never closes is dropped together with the tail."""

    raw = 'Mira esto {"type":"json","data":{"message":"x"'
    assert normalize_output(raw) == text_response("Mira esto")
    assert strip_leftover_blob(raw) == "Mira esto "


def test_blob_only_output_falls_back_to_raw() -> None:
    """When stripping would leave nothing, the raw text is used."""

    raw = '{"type":"text","data":"oops"}'
    assert normalize_output(raw) == text_response(raw)


def test_unknown_type_is_not_canonical() -> None:
    """Objects with an unknown discriminant are treated as prose."""

    raw = '{"type":"image","data":{}}'
    assert normalize_output(raw) == text_response(raw)


def test_event_without_id_keeps_structured_reply() -> None:
    """Event cards missing fields still produce a json response."""

    raw = (
        '{"type":"json","data":{"message":"Partidos en vivo","liveEvents":'
        '[{"name":"Nacional vs Junior","url":"https://x/1"}, "basura"]}}'
    )
    result = normalize_output(raw)

    assert isinstance(result, JsonResponse)
    assert result.data.message == "Partidos en vivo"
    assert len(result.data.live_events) == 1
    assert result.data.live_events[0].name == "Nacional vs Junior"
    assert result.data.live_events[0].event_id == ""


def test_null_fields_take_defaults() -> None:
    """Null message and null event lists are treated as absent."""

    assert normalize_output('{"type":"text","data":{"message":null}}') == text_response("")

    result = normalize_output('{"type":"json","data":{"message":"Hoy","liveEvents":null,"status":null}}')
    assert isinstance(result, JsonResponse)
    assert result.data.live_events is None
    assert to_wire(result) == {"type": "json", "data": {"message": "Hoy"}}


def test_invalid_data_keeps_message() -> None:
    """A discriminated object that cannot be validated still yields its message, never the raw JSON."""

    raw = 'Listo: {"type":"json","data":{"message":"Aquí van","liveEvents":[{"name":{"a":1}}]}}'
    assert normalize_output(raw) == text_response("Aquí van")


def test_strings_before_discriminant_do_not_move_strip_start() -> None:
    """Braces inside string values ahead of the discriminant are ignored when stripping."""

    closing = 'Intro {"note":"a } b","type":"text","data":"x"} fin'
    assert strip_leftover_blob(closing) == "Intro  fin"

    opening = 'Ver {"note":"{","type":"json","data":1} ok'
    assert strip_leftover_blob(opening) == "Ver  ok"
    assert normalize_output(opening) == text_response("Ver  ok")
