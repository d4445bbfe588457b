"""Shared content sanitization for prompt injection defense."""

# Tag name used for prior-learnings blocks in query generation prompts.
LEARNINGS_TAG = "previous_learnings"


def sanitize_content(text: str) -> str:
    """
    Sanitize untrusted content before including in prompts.

    Escapes XML-like delimiters so text pulled from web pages cannot
    break out of the data sections of a prompt.
    """
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def build_learnings_block(learnings: list[str]) -> str:
    """Build an XML-wrapped, sanitized bullet list of earlier learnings.

    Returns an empty string when there is nothing to include.
    """
    if not learnings:
        return ""
    bullets = "\n".join(f"- {sanitize_content(item)}" for item in learnings)
    return f"\n<{LEARNINGS_TAG}>\n{bullets}\n</{LEARNINGS_TAG}>\n"
