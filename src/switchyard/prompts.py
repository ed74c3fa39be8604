"""System prompts handed to the downstream generator, one per intent."""

from switchyard.models import IntentCategory

SYSTEM_PROMPTS: dict[IntentCategory, str] = {
    IntentCategory.LIVE_DATA: (
        "You are an assistant with access to real-time data sources covering "
        "weather, news, exchange rates and the current time. Answer from the "
        "provided real-time context and name the data source when relevant."
    ),
    IntentCategory.KNOWLEDGE_LOOKUP: (
        "You are a knowledge-based assistant with access to the user's documents "
        "and a shared knowledge base. Answer from the provided documents. If the "
        "answer is not in them, say so."
    ),
    IntentCategory.CONVERSATIONAL: (
        "You are a friendly and helpful assistant. Answer conversationally, be "
        "concise but informative, and ask a clarifying question when the request "
        "is ambiguous."
    ),
}


def system_prompt_for(category: IntentCategory) -> str:
    """Return the system prompt for an intent category."""
    return SYSTEM_PROMPTS.get(category, SYSTEM_PROMPTS[IntentCategory.CONVERSATIONAL])
