from typing import Any, Iterable

from app.core.session_store import Turn

ASSISTANT_FRAMING = "You are a helpful personal shopping assistant."
NO_PREFERENCES_INSTRUCTION = (
    f"{ASSISTANT_FRAMING} No explicit user preferences were found. Ask clarifying questions if needed."
)
PREFERENCES_SEPARATOR = ", "
ROLE_LABELS = {"user": "User", "assistant": "Assistant"}


def _is_empty(preferences: Any) -> bool:
    if preferences is None:
        return True
    if isinstance(preferences, (list, tuple)) and not preferences:
        return True
    return False


def build_system_instruction(preferences: Any) -> str:
    if _is_empty(preferences):
        return NO_PREFERENCES_INSTRUCTION
    if isinstance(preferences, (list, tuple)):
        text = PREFERENCES_SEPARATOR.join(str(item) for item in preferences)
    else:
        # Structured values go in as-is, unescaped.
        text = str(preferences)
    return (
        f"{ASSISTANT_FRAMING} User preferences: {text}. "
        "Always keep these preferences in mind when giving recommendations "
        "(e.g., prefer items that match preferences). "
        "Ask clarifying questions if required. Be concise and friendly."
    )


def build_prompt(system_instruction: str, turns: Iterable[Turn]) -> str:
    lines = [f"{system_instruction}\n\nConversation:\n"]
    for turn in turns:
        who = ROLE_LABELS.get(turn.role, "Assistant")
        lines.append(f"{who}: {turn.content}\n")
    lines.append("Assistant:")
    return "".join(lines)


def render_prompt(preferences: Any, turns: Iterable[Turn]) -> str:
    return build_prompt(build_system_instruction(preferences), turns)
