from app.core.prompt import NO_PREFERENCES_INSTRUCTION, build_prompt, build_system_instruction, render_prompt
from app.core.session_store import Turn


def test_no_preferences_asks_clarifying_questions():
    for empty in (None, [], ()):
        instruction = build_system_instruction(empty)
        assert instruction == NO_PREFERENCES_INSTRUCTION
        assert "Ask clarifying questions" in instruction


def test_preference_list_is_joined_with_comma_separator():
    instruction = build_system_instruction(["Low Sugar", "Vegan"])

    assert "User preferences: Low Sugar, Vegan." in instruction
    assert instruction.startswith("You are a helpful personal shopping assistant.")


def test_structured_preferences_are_stringified_as_is():
    raw = {"success": True, "preferences": []}

    instruction = build_system_instruction(raw)

    assert f"User preferences: {raw}." in instruction


def test_prompt_framing_is_exact():
    turns = [
        Turn(role="user", content="Recommend a snack"),
        Turn(role="assistant", content="Try almonds."),
        Turn(role="user", content="Something sweet?"),
    ]

    prompt = build_prompt("SYSTEM", turns)

    assert prompt == (
        "SYSTEM\n\nConversation:\n"
        "User: Recommend a snack\n"
        "Assistant: Try almonds.\n"
        "User: Something sweet?\n"
        "Assistant:"
    )


def test_prompt_without_turns_still_ends_with_assistant_cue():
    assert build_prompt("SYSTEM", []) == "SYSTEM\n\nConversation:\nAssistant:"


def test_render_prompt_is_deterministic():
    turns = [Turn(role="user", content="hi")]

    first = render_prompt(["Low Sugar"], turns)
    second = render_prompt(["Low Sugar"], turns)

    assert first == second
    assert "Low Sugar" in first
    assert first.endswith("User: hi\nAssistant:")
