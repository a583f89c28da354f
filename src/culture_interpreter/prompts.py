"""Prompt builders.

The system prompt is split in two. ``CACHEABLE_SYSTEM_MESSAGE`` is static and
large so the provider can cache it; ``build_dynamic_prompt`` produces the short
per-request part and never repeats anything from the static block.
"""

from __future__ import annotations

from typing import Any, Dict, List

from .cultures import CULTURE_NAMES, culture_name
from .llm.types import INBOUND, OUTBOUND

CULTURE_NOTES: Dict[str, str] = {
    "american": "Direct and informal; enthusiasm is common and often inflated; praise is frequent; criticism is softened with positives.",
    "british": "Understatement and irony are the norm; politeness often masks disagreement ('quite good' can mean mediocre).",
    "german": "Direct, precise and task-focused; criticism is factual rather than personal; formality (Sie) signals respect.",
    "french": "Values eloquence and debate; disagreement is intellectual engagement; formality matters in first contact.",
    "japanese": "High-context; harmony and face-saving dominate; 'no' is rarely said directly; silence and hedging carry meaning.",
    "chinese": "High-context; relationships (guanxi) and face are central; indirect refusals; hierarchy shapes tone.",
    "indian": "Relationship-oriented and polite; 'yes' can mean 'I heard you'; hierarchy and indirect disagreement are common.",
    "spanish": "Warm and expressive; personal relationships precede business; directness is acceptable among peers.",
    "italian": "Expressive and relational; emotion is shown openly; persuasion through personal connection.",
    "dutch": "Very direct and egalitarian; bluntness is honesty, not rudeness; little small talk.",
    "korean": "High-context and hierarchical (nunchi); age and status shape language; indirect refusals.",
    "brazilian": "Warm, informal and relationship-first; flexibility with plans; conflict avoided publicly.",
    "mexican": "Polite and relationship-oriented; indirect 'no'; formality and courtesy soften requests.",
    "australian": "Informal and egalitarian; humour and mateship; dislikes pretension; understatement common.",
    "canadian": "Polite and consensus-seeking; apologies are social lubricant; less direct than American.",
    "russian": "Direct in private, formal in official contexts; smiles are reserved for friends; sincerity valued over politeness.",
    "ukrainian": "Warm with close contacts, reserved with strangers; directness valued; resilience and sincerity prized.",
}


def _culture_knowledge() -> str:
    lines = [f"- {CULTURE_NAMES[code]}: {note}" for code, note in CULTURE_NOTES.items()]
    return "\n".join(lines)


CACHEABLE_SYSTEM_MESSAGE = f"""You are a cultural communication expert who helps people understand and write messages across different cultures. You analyze meaning, cultural context and emotional content, and you always answer in structured JSON.

## Cultural knowledge base
{_culture_knowledge()}

## Output format rules
- Return ONLY a single JSON object: no markdown, no code fences, no commentary before or after it.
- Use double quotes for every key and string value and escape inner quotes.
- Never leave a required string empty.
- "emotions" is an array of objects with "name", "senderScore", an optional "receiverScore" and an optional "explanation".
- Detect emotions dynamically from the message; do not use a preset list.
- Order emotions from most to least relevant and include the top 3.

## Scoring rubric
- Scores are integers from 0 to 10 inclusive; never use decimals.
- 0 = absent, 1-3 = faint, 4-6 = clearly present, 7-8 = strong, 9-10 = dominant.
- "senderScore" is how intense the emotion is as intended within the sender's culture.
- "receiverScore" is how intense the same emotion will feel to the receiver given their culture.
- When sender and receiver share a culture, omit "receiverScore".
- When cultures differ, every emotion MUST include both "senderScore" and "receiverScore"."""


def build_cacheable_system_blocks() -> List[Dict[str, Any]]:
    """System blocks for the Messages API with the static prefix marked for caching."""
    return [
        {
            "type": "text",
            "text": CACHEABLE_SYSTEM_MESSAGE,
            "cache_control": {"type": "ephemeral"},
        }
    ]


def _quoted(message: str) -> str:
    return f'Message:\n"""\n{message}\n"""'


def build_inbound_same_culture_prompt(message: str, culture: str) -> str:
    name = culture_name(culture)
    return (
        f"Interpret this message from a {name} sender to a {name} receiver. "
        "Explain simply what the sender really means versus what they literally said.\n\n"
        f"{_quoted(message)}\n\n"
        "Respond with JSON only:\n"
        '{"bottomLine": "2-3 sentences", "culturalContext": "2-3 sentences on style and subtext", '
        '"emotions": [{"name": "...", "senderScore": 0, "explanation": "..."}]}'
    )


def build_inbound_cross_culture_prompt(message: str, sender_culture: str, receiver_culture: str) -> str:
    sender = culture_name(sender_culture)
    receiver = culture_name(receiver_culture)
    return (
        f"Interpret this message from a {sender} sender to a {receiver} receiver. "
        f"Explain how a {receiver} reader may perceive it differently and what misunderstandings could arise.\n\n"
        f"{_quoted(message)}\n\n"
        "Respond with JSON only:\n"
        '{"bottomLine": "2-3 sentences", "culturalContext": "3-4 sentences on the cultural differences", '
        '"emotions": [{"name": "...", "senderScore": 0, "receiverScore": 0, "explanation": "..."}]}'
    )


def build_outbound_same_culture_prompt(message: str, culture: str) -> str:
    name = culture_name(culture)
    return (
        f"A {name} sender is about to send this message to a {name} receiver. "
        "Analyze how it will land and rewrite it to communicate the intent more effectively.\n\n"
        f"{_quoted(message)}\n\n"
        "Respond with JSON only:\n"
        '{"originalAnalysis": "2-3 sentences", "suggestions": ["concrete improvement", "..."], '
        '"optimizedMessage": "the improved message", '
        '"emotions": [{"name": "...", "senderScore": 0, "explanation": "..."}]}'
    )


def build_outbound_cross_culture_prompt(message: str, sender_culture: str, receiver_culture: str) -> str:
    sender = culture_name(sender_culture)
    receiver = culture_name(receiver_culture)
    return (
        f"A {sender} sender is about to send this message to a {receiver} receiver. "
        f"Analyze how a {receiver} reader will perceive it and rewrite it for {receiver} norms "
        "while keeping the sender's intent.\n\n"
        f"{_quoted(message)}\n\n"
        "Respond with JSON only:\n"
        '{"originalAnalysis": "2-3 sentences", "suggestions": ["concrete improvement", "..."], '
        '"optimizedMessage": "the improved message", '
        '"emotions": [{"name": "...", "senderScore": 0, "receiverScore": 0, "explanation": "..."}]}'
    )


def build_dynamic_prompt(
    message: str,
    sender_culture: str,
    receiver_culture: str,
    same_culture: bool,
    mode: str,
) -> str:
    if mode == INBOUND:
        if same_culture:
            return build_inbound_same_culture_prompt(message, sender_culture)
        return build_inbound_cross_culture_prompt(message, sender_culture, receiver_culture)
    if mode == OUTBOUND:
        if same_culture:
            return build_outbound_same_culture_prompt(message, sender_culture)
        return build_outbound_cross_culture_prompt(message, sender_culture, receiver_culture)
    raise ValueError(f"Unknown interpretation mode: {mode}")
