import logging

from app.core.metrics import metrics
from app.core.sanitize import FALLBACK_REPLY, looks_like_payload_dump, sanitize


def test_clean_text_passes_through():
    result = sanitize("Try some roasted almonds.")

    assert result.text == "Try some roasted almonds."
    assert result.replaced is False
    assert result.source == "clean"


def test_detects_payload_like_text():
    assert looks_like_payload_dump('{"candidates": []}')
    assert looks_like_payload_dump("  [1, 2, 3]")
    assert looks_like_payload_dump('here is "finishReason": "STOP"')
    assert looks_like_payload_dump('prefix "candidates" suffix')
    assert looks_like_payload_dump("x" * 17, max_chars=16)
    assert not looks_like_payload_dump("x" * 16, max_chars=16)
    assert not looks_like_payload_dump("Plain answer about candidates and reasons.")


def test_dump_replaced_with_fixed_fallback_and_raw_logged(caplog):
    raw = {"weird": {"nested": True}, "marker": "secret-debug-value"}
    caplog.set_level(logging.WARNING, logger="app.core.sanitize")

    result = sanitize('{"weird": {"nested": true}}', raw)

    assert result.text == FALLBACK_REPLY
    assert result.replaced is True
    assert result.source == "fallback"
    assert "secret-debug-value" in caplog.text
    assert "secret-debug-value" not in result.text


def test_safe_fallback_taken_from_outputs():
    raw = {
        "outputs": [
            {"content": '{"still": "json"}'},
            {"content": "   "},
            {"content": [{"text": "A clean answer."}]},
        ]
    }

    result = sanitize('{"candidates": []}', raw)

    assert result.text == "A clean answer."
    assert result.source == "outputs"


def test_outputs_fallback_that_looks_like_dump_is_rejected():
    raw = {"outputs": [{"content": '[{"finishReason": "STOP"}]'}]}

    result = sanitize("[]", raw)

    assert result.text == FALLBACK_REPLY


def test_sanitize_is_idempotent():
    samples = [
        "Just text.",
        '{"candidates": [{"content": "x"}]}',
        "[partial",
        "y" * 20000,
        FALLBACK_REPLY,
        "",
    ]
    for sample in samples:
        once = sanitize(sample).text
        twice = sanitize(once).text
        assert once == twice


def test_fallback_reply_is_not_reclassified():
    assert not looks_like_payload_dump(FALLBACK_REPLY)
    assert sanitize(FALLBACK_REPLY).replaced is False


def test_forced_sanitize_replaces_plain_looking_text(caplog):
    caplog.set_level(logging.WARNING, logger="app.core.sanitize")

    result = sanitize("debug-token-xyz", "debug-token-xyz", force=True)

    assert result.text == FALLBACK_REPLY
    assert result.replaced is True
    assert "debug-token-xyz" in caplog.text


def test_forced_sanitize_still_prefers_outputs_text():
    raw = {"outputs": [{"content": "Usable answer."}]}

    result = sanitize("null", raw, force=True)

    assert result.text == "Usable answer."
    assert result.source == "outputs"


def test_replacement_counters_by_source():
    outputs_before = metrics.get("chat_sanitizer_replaced_total", {"source": "outputs"})
    fallback_before = metrics.get("chat_sanitizer_replaced_total", {"source": "fallback"})

    sanitize('{"x": 1}', {"outputs": [{"content": "Fine."}]})
    sanitize('{"x": 1}', None)
    sanitize("clean text")

    assert metrics.get("chat_sanitizer_replaced_total", {"source": "outputs"}) == outputs_before + 1
    assert metrics.get("chat_sanitizer_replaced_total", {"source": "fallback"}) == fallback_before + 1
