"""
Reply composition with the OpenAI chat completions API
Builds the tutor instruction policy and normalizes structured output
"""
import json
import logging
from typing import List, Optional

from openai import AsyncOpenAI, OpenAIError
from pydantic import TypeAdapter, ValidationError

from educator.core.config import settings
from educator.core.errors import CompositionFailure, MalformedReplyFailure
from educator.core.security_utils import mask_secret_tokens
from educator.models.reply import (
    Animation,
    FacialExpression,
    ReplyMessageDraft,
    ReplyPayload,
    WrappedReply,
)
from educator.services.openai_client import get_openai_client

logger = logging.getLogger(__name__)

BASE_INSTRUCTIONS = """
You are a virtual educator and teacher who provides comprehensive, detailed, and engaging educational responses.
You will always reply with a JSON array of messages. With a maximum of {max_messages} messages.
Each message has a text, facialExpression, and animation property.
The different facial expressions are: {expressions}.
The different animations are: {animations}.

IMPORTANT GUIDELINES:
- Provide detailed explanations and comprehensive answers
- Each message should be substantial and informative (aim for 3-5 sentences minimum)
- Use examples, analogies, and practical applications when explaining concepts
- Be thorough in your explanations while remaining engaging and conversational
- Break complex topics into digestible parts across the messages
- Show enthusiasm for teaching and learning
- Ask follow-up questions to encourage continued learning
"""

KAZAKH_CLAUSE = """
ВАЖНО: Отвечай ТОЛЬКО на казахском языке (қазақ тілінде жауап бер).
Используй естественный казахский язык с правильной грамматикой.
Будь образовательным и полезным учителем.
Примеры фраз: "Сәлем!", "Түсіндің бе?", "Жақсы сұрақ!", "Қалай ойлайсың?"
"""

RUSSIAN_CLAUSE = """
ВАЖНО: Отвечай ТОЛЬКО на русском языке.
Используй естественный русский язык с правильной грамматикой.
Будь образовательным и полезным учителем.
"""

ENGLISH_CLAUSE = """
IMPORTANT: Respond ONLY in English language.
Use natural English with proper grammar.
Be educational, helpful, and engaging in your responses.
"""

# Exact-match routing only; anything not listed gets English
LANGUAGE_CLAUSES = {
    "kk": KAZAKH_CLAUSE,
    "kazakh": KAZAKH_CLAUSE,
    "ru": RUSSIAN_CLAUSE,
    "russian": RUSSIAN_CLAUSE,
}

_payload_adapter = TypeAdapter(ReplyPayload)


def language_clause(language_tag: Optional[str]) -> str:
    return LANGUAGE_CLAUSES.get(language_tag or "", ENGLISH_CLAUSE)


def build_instructions(language_tag: Optional[str], max_messages: Optional[int] = None) -> str:
    """
    Build the system instructions for one turn

    Args:
        language_tag: Language the reply must be written in
        max_messages: Upper bound on reply entries

    Returns:
        Base tutor instructions followed by the language clause
    """
    base = BASE_INSTRUCTIONS.format(
        max_messages=max_messages or settings.MAX_REPLY_MESSAGES,
        expressions=", ".join(e.value for e in FacialExpression),
        animations=", ".join(a.value for a in Animation),
    )
    return base + language_clause(language_tag)


def parse_reply(raw: Optional[str]) -> List[ReplyMessageDraft]:
    """
    Normalize generation output into an ordered draft list

    Accepts a bare JSON array of drafts or an object wrapping them under
    "messages". Anything else is rejected as a whole.

    Raises:
        MalformedReplyFailure: Output is not one of the two accepted shapes
    """
    if not raw:
        raise MalformedReplyFailure("Generation service returned no content")

    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedReplyFailure(f"Reply is not valid JSON: {e}")

    try:
        payload = _payload_adapter.validate_python(decoded)
    except ValidationError as e:
        raise MalformedReplyFailure(
            f"Reply is neither a message array nor a messages object ({e.error_count()} errors)"
        )

    drafts = payload.messages if isinstance(payload, WrappedReply) else payload
    if not drafts:
        raise MalformedReplyFailure("Reply contains no messages")
    return list(drafts)


class ReplyComposer:
    """
    Generates the ordered reply drafts for a user message
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        max_messages: Optional[int] = None
    ):
        self._client = client
        self.model = model or settings.OPENAI_CHAT_MODEL
        self.max_messages = max_messages or settings.MAX_REPLY_MESSAGES

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    async def compose(self, user_message: str, language_tag: str) -> List[ReplyMessageDraft]:
        """
        Compose reply drafts in the requested language

        Args:
            user_message: What the user said or typed
            language_tag: Language code or name ("kk", "russian", "en", ...)

        Returns:
            Ordered drafts, at most max_messages long

        Raises:
            CompositionFailure: Upstream error
            MalformedReplyFailure: Output shape not accepted
        """
        logger.info(f"Composing reply (language: {language_tag})")

        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                max_tokens=settings.CHAT_MAX_TOKENS,
                temperature=settings.CHAT_TEMPERATURE,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": build_instructions(language_tag, self.max_messages)},
                    {"role": "user", "content": user_message or "Hello"},
                ],
            )
        except OpenAIError as e:
            raise CompositionFailure(mask_secret_tokens(str(e)))

        if not completion.choices:
            raise MalformedReplyFailure("Generation service returned no choices")

        drafts = parse_reply(completion.choices[0].message.content)
        if len(drafts) > self.max_messages:
            logger.warning(f"Reply had {len(drafts)} messages, keeping the first {self.max_messages}")
            drafts = drafts[:self.max_messages]

        logger.info(f"Generated {len(drafts)} messages in {language_tag}")
        return drafts
