"""Prompt assembly for the personal finance assistant."""

from backend.app.assistant.exceptions import InvalidModeError
from backend.app.knowledge.types import RetrievedItem
from backend.app.models.assistant import AssistantMode, ChatRequest
from backend.app.utils.formatting import round_score

NO_MATCHED_TRANSACTIONS = "No matched transactions."

SUMMARY_QUERY_TEXT = (
    "summarize recent personal finance trends, spending, risks, and bookkeeping suggestions"
)
SUMMARY_QUERY_FOCUS_PREFIX = "personal finance summary and bookkeeping suggestions focus: "

SUMMARY_USER_PROMPT = (
    "Please provide a personal finance summary and practical bookkeeping "
    "suggestions based on my bill data."
)

SYSTEM_PROMPT_TEMPLATE = """You are a personal finance assistant inside a bookkeeping application.
Answer using only the user's bill data provided below. If the data is not
enough to answer, say so plainly instead of guessing. Keep amounts in their
original currencies and never convert between currencies.

Current date and time: {current_date_time}
Conversation mode: {conversation_mode}

In chat mode, answer the latest user message directly and concisely.
In summary mode, summarize income, spending and cash flow trends, point out
risks, and give practical bookkeeping suggestions.

## Financial snapshot
{financial_snapshot}

## Retrieved transactions
{retrieved_knowledge}
"""

NO_DATA_REPLY_CHAT = "I do not have enough bill data yet. Please add some transactions first."
NO_DATA_REPLY_SUMMARY = (
    "There is no bill data available for summary yet. Please add transactions first."
)


def normalize_mode(mode: str | None) -> AssistantMode:
    """Resolve the requested mode, defaulting to chat.

    Raises:
        InvalidModeError: If the mode is neither chat nor summary
    """
    if not mode:
        return AssistantMode.chat

    try:
        return AssistantMode(mode)
    except ValueError as e:
        raise InvalidModeError(f"invalid assistant mode: {mode}") from e


def build_embedding_query_text(
    request: ChatRequest, mode: AssistantMode, max_history: int
) -> str:
    """Build the text embedded as the retrieval query.

    Summary mode uses a fixed focus sentence. Chat mode uses the message
    followed by the recent user turns of the history.
    """
    message = request.message.strip()

    if mode == AssistantMode.summary:
        if message:
            return SUMMARY_QUERY_FOCUS_PREFIX + message
        return SUMMARY_QUERY_TEXT

    parts = [message]
    for item in _recent_history(request, max_history):
        content = item.content.strip()
        if item.role == "user" and content:
            parts.append(content)

    return "\n".join(parts).strip()


def build_user_prompt(request: ChatRequest, mode: AssistantMode, max_history: int) -> str:
    """Build the user prompt: the request itself plus the recent conversation."""
    message = request.message.strip()

    if mode == AssistantMode.summary:
        prompt = SUMMARY_USER_PROMPT
        if message:
            prompt += "\nAdditional focus: " + message
    else:
        prompt = "Latest user message:\n" + message

    history_lines = []
    for item in _recent_history(request, max_history):
        content = item.content.strip()
        if content:
            history_lines.append(f"{item.role.upper()}: {content}")

    if history_lines:
        prompt += "\n\nConversation history:\n" + "\n".join(history_lines)

    return prompt


def build_retrieved_knowledge_text(retrieved: list[RetrievedItem]) -> str:
    """Render retrieved items as numbered blocks with their similarity."""
    if not retrieved:
        return NO_MATCHED_TRANSACTIONS

    blocks = [
        f"[{index}] similarity={round_score(entry.score):g}\n{entry.item.text}"
        for index, entry in enumerate(retrieved, start=1)
    ]
    return "\n\n".join(blocks)


def build_system_prompt(
    current_date_time: str,
    mode: AssistantMode,
    financial_snapshot: str,
    retrieved_knowledge: str,
) -> str:
    """Fill the fixed system prompt sections."""
    prompt = SYSTEM_PROMPT_TEMPLATE.format(
        current_date_time=current_date_time,
        conversation_mode=mode.value,
        financial_snapshot=financial_snapshot,
        retrieved_knowledge=retrieved_knowledge,
    )
    return prompt.replace("\r\n", "\n")


def no_data_reply(mode: AssistantMode) -> str:
    """Reply used when the user has no usable bill data."""
    if mode == AssistantMode.summary:
        return NO_DATA_REPLY_SUMMARY
    return NO_DATA_REPLY_CHAT


def _recent_history(request: ChatRequest, max_history: int):
    if max_history <= 0:
        return []
    return request.history[-max_history:]
