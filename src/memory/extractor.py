"""LLM-backed fact extraction from conversations, plus candidate validation."""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from observability import metrics

from .models import (
    LanguagePreference,
    MemoryCategory,
    MemoryFact,
    MemoryTier,
    coerce_category,
    coerce_language,
    coerce_tier,
    generate_memory_id,
)
from .policy import DEFAULT_POLICY, TierPolicy

logger = structlog.get_logger()

_EXTRACTION_PROMPT = """You are a memory extraction system. Analyze this conversation and extract ONLY important, lasting facts about the user.

RULES:
1. Extract personal facts, strong preferences, and ongoing projects
2. DO NOT extract: one-time questions, general knowledge, exploratory topics, hypothetical discussions
3. Be selective - only extract facts worth remembering long-term (3-6 months)
4. Assign confidence: 1.0 = certain, 0.7 = likely, 0.5 = possible
5. Only return facts with confidence >= {min_confidence}

CATEGORIES:
- profile: Name, occupation, location, family, interests, background
- preference: Strong likes/dislikes, work style, communication preferences, habits
- technical: Programming languages, tools, frameworks, tech stack, methodologies
- project: Current work, ongoing projects, goals, challenges

TIERS (retention period):
- core: Permanent facts (profile information, fundamental preferences) - never expires
- important: Long-term preferences and technical info - 90 days
- context: Current projects and temporary context - 30 days

LANGUAGE PREFERENCE DETECTION:
- "english": User primarily uses English
- "chinese": User primarily uses Chinese (中文)
- "hybrid": User mixes both English and Chinese
If you cannot determine, set to null.

CONVERSATION:
{conversation_text}

Return ONLY valid JSON in this exact format:
{{
  "facts": [
    {{
      "content": "Brief, clear statement (e.g., 'Prefers TypeScript over JavaScript')",
      "category": "profile|preference|technical|project",
      "confidence": 0.6-1.0,
      "tier": "core|important|context"
    }}
  ],
  "language_preference": "english|chinese|hybrid|null"
}}

Return empty facts array if nothing important to extract."""

_FENCED_JSON = re.compile(r"```json\s*(\{.*?\})\s*```", re.DOTALL)

MEMORY_TRIGGER_KEYWORDS = {
    "english": [
        "remember that",
        "don't forget",
        "keep in mind",
        "for future reference",
        "just so you know",
        "please remember",
        "help me remember",
        "my name is",
        "i'm a",
        "i am a",
        "i work as",
        "i prefer",
        "i like",
        "i don't like",
        "i hate",
        "i love",
        "i tend to",
        "i usually",
        "prefer english",
        "prefer chinese",
        "use english",
        "use chinese",
        "speak english",
        "speak chinese",
    ],
    "chinese": [
        "记住",
        "别忘了",
        "不要忘记",
        "请记住",
        "帮我记住",
        "我叫",
        "我的名字是",
        "我是",
        "我在",
        "我从事",
        "我的工作是",
        "我喜欢",
        "我不喜欢",
        "我讨厌",
        "我爱",
        "我偏好",
        "我倾向于",
        "我习惯",
        "用英文",
        "用中文",
        "说英文",
        "说中文",
        "偏好英文",
        "偏好中文",
    ],
}

MIN_MESSAGES = 5
MIN_DURATION_SECONDS = 120


@dataclass
class CandidateFact:
    """A validated fact proposal, not yet stored."""

    content: str
    category: MemoryCategory
    tier: MemoryTier
    confidence: float


@dataclass
class ExtractionResult:
    facts: list[CandidateFact] = field(default_factory=list)
    language_preference: LanguagePreference | None = None


def _reject(reason: str, raw) -> None:
    metrics.counter("memory.candidates_rejected")
    logger.warning("memory.candidate_rejected", reason=reason, candidate=str(raw)[:200])


def validate_candidate(raw, min_confidence: float = 0.6) -> CandidateFact | None:
    """Check a raw {content, category, tier, confidence} mapping.

    Invalid candidates are logged and dropped, never raised.
    """
    if not isinstance(raw, dict):
        _reject("not_an_object", raw)
        return None

    content = raw.get("content")
    if not isinstance(content, str) or not content.strip():
        _reject("empty_content", raw)
        return None

    category = coerce_category(raw.get("category"))
    if category is None:
        _reject("invalid_category", raw)
        return None

    tier = coerce_tier(raw.get("tier"))
    if tier is None:
        _reject("invalid_tier", raw)
        return None

    confidence = raw.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        _reject("non_numeric_confidence", raw)
        return None
    if not min_confidence <= confidence <= 1.0:
        _reject("confidence_out_of_range", raw)
        return None

    return CandidateFact(
        content=content.strip(), category=category, tier=tier, confidence=float(confidence)
    )


def build_fact(
    candidate: CandidateFact,
    conversation_id: str,
    auto_extracted: bool = True,
    now: datetime | None = None,
    policy: TierPolicy = DEFAULT_POLICY,
) -> MemoryFact:
    """Turn a validated candidate into a storable fact."""
    now = now or datetime.now()
    return MemoryFact(
        id=generate_memory_id(),
        content=candidate.content,
        category=candidate.category,
        tier=candidate.tier,
        confidence=candidate.confidence,
        created_at=now,
        last_used_at=now,
        use_count=0,
        expires_at=policy.calculate_expiry(candidate.tier, now),
        extracted_from=conversation_id,
        auto_extracted=auto_extracted,
    )


def parse_extraction_response(text: str, min_confidence: float = 0.6) -> ExtractionResult:
    """Parse the model's JSON (raw or in a ```json fence). Malformed output yields nothing."""
    match = _FENCED_JSON.search(text or "")
    payload = (match.group(1) if match else text or "").strip()

    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError:
        logger.warning("memory.extraction_parse_failed", response=payload[:200])
        return ExtractionResult()

    if not isinstance(parsed, dict) or not isinstance(parsed.get("facts"), list):
        return ExtractionResult()

    facts = []
    for raw in parsed["facts"]:
        candidate = validate_candidate(raw, min_confidence)
        if candidate:
            facts.append(candidate)

    return ExtractionResult(
        facts=facts, language_preference=coerce_language(parsed.get("language_preference"))
    )


def has_memory_trigger_keywords(message: str) -> bool:
    lowered = (message or "").lower()
    keywords = MEMORY_TRIGGER_KEYWORDS["english"] + MEMORY_TRIGGER_KEYWORDS["chinese"]
    return any(keyword.lower() in lowered for keyword in keywords)


def should_extract_memory(
    message_count: int, duration_seconds: float, keyword_trigger: bool = False
) -> bool:
    """Extract on an explicit trigger, or once a conversation is long enough."""
    if keyword_trigger:
        return True
    return message_count >= MIN_MESSAGES and duration_seconds >= MIN_DURATION_SECONDS


def format_conversation(messages: list[dict]) -> str:
    return "\n\n".join(
        f"{'User' if m.get('role') == 'user' else 'Assistant'}: {m.get('content', '')}"
        for m in messages
    )


class FactExtractor:
    """Extracts candidate facts from a conversation transcript using an LLM."""

    def __init__(self, provider, min_confidence: float = 0.6, max_tokens: int = 1000):
        self.provider = provider
        self.min_confidence = min_confidence
        self.max_tokens = max_tokens

    def extract(self, messages: list[dict], conversation_id: str = "") -> ExtractionResult:
        """Run extraction. Provider failures return an empty result."""
        if not messages:
            return ExtractionResult()

        prompt = _EXTRACTION_PROMPT.format(
            min_confidence=self.min_confidence,
            conversation_text=format_conversation(messages),
        )
        try:
            response = self.provider.generate(
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            logger.warning(
                "memory.extraction_failed", conversation_id=conversation_id, error=str(e)
            )
            return ExtractionResult()

        return parse_extraction_response(response, self.min_confidence)
