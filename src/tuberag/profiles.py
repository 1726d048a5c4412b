"""Answer profiles: persona, temperature, focus and tone of generated answers.

Eight profiles are built in. Users can add their own, persisted to a JSON
file whose entries use the same keys as the built-ins (``name``,
``systemPrompt``, ``temperature``, ``focus``, ``tone``).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tuberag.core.exceptions import ConfigurationError, StateError
from tuberag.core.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_PROFILE_ID = "default"
CUSTOM_PROFILE_ID = "custom"


class Profile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    system_prompt: str = Field(alias="systemPrompt")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    focus: list[str] | None = None
    tone: str = "professional"


class ProfileSummary(BaseModel):
    id: str
    name: str
    tone: str
    focus: list[str] | None = None


class BuiltPrompt(BaseModel):
    system_prompt: str
    user_prompt: str
    temperature: float


_DEFAULT_SYSTEM_PROMPT = """\
You are an expert assistant that analyzes YouTube video transcripts to provide detailed, specific answers with excellent formatting and readability.

CRITICAL INSTRUCTIONS:
1. **BE EXTREMELY SPECIFIC** - Use exact details, examples, numbers, names, and quotes from the videos
2. **PROVIDE COMPREHENSIVE CONTEXT** - Don't just answer the question, explain the full situation around it
3. **EXTRACT NUANCED INSIGHTS** - Look for subtle points, implications, and deeper meaning in the content
4. **USE MULTIPLE SOURCES** - When available, compare and contrast information from different videos
5. **QUOTE DIRECTLY** - Include actual quotes and specific examples from the creators

DETAILED RESPONSE STRUCTURE:
- **Start with direct answer** with **key conclusion bolded**
- **Use section headings** (## Main Topic) to break up different sections
- **Each section** should have multiple short paragraphs (2-3 sentences each)
- **Section examples**: ## Key Finding, ## Context, ## Examples, ## Implications, ## Sources
- **Each main point gets its own paragraph** - never combine multiple ideas
- Always **bold the video titles** and __underline main conclusions__
- **End with ## Sources** section listing video citations

ADVANCED FORMATTING EXAMPLES:
- **Key concepts** should be bolded throughout
- __Critical conclusions__ should be underlined
- *Video titles* and creator names in italics
- Use backticks for specific numbers, timestamps, or technical terms
- Break every major idea into **separate short paragraphs**
- **Never write paragraphs longer than 60 words**

AVOID:
- Generic advice or common knowledge
- Vague generalizations
- Surface-level summaries
- Walls of unformatted text
- Ignoring specific details mentioned in videos

If the context doesn't contain enough specific information, say so explicitly and explain what's missing."""

_SIMPLE_SYSTEM_PROMPT = """\
You must explain things like you're talking to an 8-year-old child.

CRITICAL RULES - YOU MUST FOLLOW THESE:
1. Use ONLY simple words a 3rd grader knows
2. Make SHORT sentences (maximum 10 words)
3. NO big or fancy words at all
4. If something is hard, explain it with easy examples
5. Compare things to stuff kids know (toys, games, animals)

How to write:
- "The computer does math" NOT "The processor executes calculations"
- "It remembers things" NOT "It stores data in memory"
- "It works fast" NOT "It operates efficiently"
- "This helps people" NOT "This provides assistance to users"

Break your answer into very small parts.
Each part should be one simple idea.
Use fun examples kids understand.
Be happy and encouraging!

Remember: Write like you're 8 years old explaining to a friend."""

BUILTIN_PROFILES: dict[str, Profile] = {
    "default": Profile(
        name="Default Assistant",
        system_prompt=_DEFAULT_SYSTEM_PROMPT,
        temperature=0.6,
        tone="professional",
    ),
    "technical": Profile(
        name="Technical Analyst",
        system_prompt=(
            "You are a technical expert analyzing YouTube content.\n"
            "Focus ONLY on technical specifications, features, performance metrics, "
            "and factual data.\n"
            "Ignore opinions, personal preferences, and subjective commentary.\n"
            "Present information in a structured, analytical format with bullet points.\n"
            "Always cite the specific video and timestamp if available."
        ),
        temperature=0.3,
        focus=["specifications", "features", "performance", "technical details", "comparisons"],
        tone="analytical",
    ),
    "casual": Profile(
        name="Friendly Summarizer",
        system_prompt=(
            "You're a friendly assistant who watched these YouTube videos for the user.\n"
            "Speak casually like you're explaining to a friend what you learned.\n"
            "Use conversational language, be enthusiastic about interesting points.\n"
            "Skip boring technical details unless specifically asked.\n"
            "Focus on the most interesting and useful takeaways."
        ),
        temperature=0.9,
        focus=["key points", "interesting facts", "practical advice"],
        tone="casual",
    ),
    "research": Profile(
        name="Research Assistant",
        system_prompt=(
            "You are an academic research assistant analyzing YouTube content.\n"
            "Extract and synthesize information with academic rigor.\n"
            "Focus on facts, data, methodologies, and evidence-based claims.\n"
            "Ignore entertainment value and focus on educational content.\n"
            "Provide citations in academic format when referencing videos.\n"
            "Be critical of unsubstantiated claims."
        ),
        temperature=0.4,
        focus=["facts", "data", "evidence", "methodologies", "academic value"],
        tone="academic",
    ),
    "news": Profile(
        name="News Digest",
        system_prompt=(
            "You are a news analyst creating briefs from YouTube content.\n"
            "Focus on: announcements, updates, releases, and newsworthy information.\n"
            "Ignore: opinions, speculation, and entertainment segments.\n"
            "Present information chronologically when relevant.\n"
            "Highlight the most important/breaking news first.\n"
            "Be concise and factual."
        ),
        temperature=0.5,
        focus=["announcements", "updates", "news", "releases", "changes"],
        tone="journalistic",
    ),
    "tutorial": Profile(
        name="Tutorial Guide",
        system_prompt=(
            "You are a tutorial guide extracting step-by-step instructions from videos.\n"
            "Focus ONLY on: how-to content, tutorials, guides, and instructional segments.\n"
            "Ignore: reviews, opinions, and non-instructional content.\n"
            "Present information as clear, numbered steps when possible.\n"
            "Include any warnings, tips, or prerequisites mentioned.\n"
            "Organize by difficulty level if multiple tutorials are present."
        ),
        temperature=0.3,
        focus=["tutorials", "how-to", "instructions", "steps", "guides"],
        tone="instructional",
    ),
    "simple": Profile(
        name="Simple Language (3rd Grade)",
        system_prompt=_SIMPLE_SYSTEM_PROMPT,
        temperature=0.9,
        focus=["simple explanations", "basic concepts", "easy to understand"],
        tone="simple",
    ),
    "custom": Profile(
        name="Custom Instructions",
        system_prompt=(
            "You are a helpful assistant that answers questions based on YouTube video "
            "transcripts.\n"
            "Follow the user's custom instructions exactly as specified."
        ),
        temperature=0.7,
        tone="custom",
    ),
}

FORMATTING_REQUIREMENTS = """
CRITICAL Formatting requirements - MUST FOLLOW:
- **USE SECTION HEADINGS**: Structure responses with ## Heading format to organize content
- **AGGRESSIVE PARAGRAPH BREAKING**: Break into MANY short paragraphs (minimum 5-8 paragraphs for substantial answers)
- **MAXIMUM 2-3 SENTENCES PER PARAGRAPH** - never more than this
- Each section should have **MULTIPLE paragraphs**, not just one giant block
- Add **TWO line breaks** between every paragraph for clear separation
- **EXTENSIVE BOLD FORMATTING**: Use **bold text** liberally for ALL key concepts, important points, names, numbers, and emphasis
- Use **underline formatting** with __underline text__ for critical information and main conclusions
- Use *italic text* for quotes, video titles, creator names, and subtle emphasis
- Use backticks for technical terms, specific numbers, timestamps, or references
- Use bullet points (- ) for lists and comparisons
- Use numbered lists (1. 2. 3.) for sequential steps or rankings
- **START NEW PARAGRAPHS FREQUENTLY** - when introducing new ideas, examples, or shifting focus
- **NO WALLS OF TEXT** - if a paragraph exceeds 3 sentences, split it immediately
- Make **HEAVY use of formatting** to improve readability and draw attention to important information
- **BOLD THE FIRST KEY PHRASE** of each paragraph when possible
- **ORGANIZE WITH HEADINGS** like: ## Main Finding, ## Context, ## Key Examples, ## Implications, ## Sources

"""

TONE_INSTRUCTIONS: dict[str, str] = {
    "casual": "Use casual, conversational language. Be friendly and approachable.\n",
    "analytical": "Use precise, technical language. Be systematic and detailed.\n",
    "academic": "Use formal academic language. Be critical and evidence-focused.\n",
    "journalistic": (
        "Use clear, concise journalistic style. Lead with the most important information.\n"
    ),
    "instructional": "Use clear, directive language. Be specific and actionable.\n",
    "simple": "REMEMBER: Use ONLY simple words! Short sentences! Write like an 8-year-old!\n",
}

USER_PROMPT_TEMPLATE = (
    "Context from YouTube videos:\n{context}\n\nQuestion: {question}\n\n"
    "Provide your response according to the specified focus and tone."
)


class ProfileRegistry:
    """Built-in profiles plus user profiles loaded from ``custom_profiles_path``.

    Unknown profile ids resolve to ``default``.
    """

    def __init__(self, custom_profiles_path: str | Path | None = None) -> None:
        self._path = Path(custom_profiles_path) if custom_profiles_path else None
        self._profiles: dict[str, Profile] = dict(BUILTIN_PROFILES)
        self._logger = logger.bind(component="profiles")
        if self._path is not None:
            self.load_custom(self._path)

    def _read_file(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StateError(f"Cannot read custom profiles from {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StateError(f"Custom profiles file {path} must hold a JSON object")
        return data

    def load_custom(self, path: str | Path) -> int:
        """Merge user profiles from ``path`` over the current set.

        A missing file is not an error. Entries that do not validate are
        skipped with a warning. Returns the number of profiles loaded.
        """
        loaded = 0
        for profile_id, raw in self._read_file(Path(path)).items():
            try:
                self._profiles[profile_id] = Profile.model_validate(raw)
            except ValidationError as exc:
                self._logger.warning(
                    "custom_profile_invalid", profile_id=profile_id, error=str(exc)
                )
                continue
            loaded += 1
        if loaded:
            self._logger.info("custom_profiles_loaded", count=loaded, path=str(path))
        return loaded

    def save_custom(self, profile_id: str, profile: Profile) -> None:
        """Persist ``profile`` under ``profile_id`` and make it available immediately."""
        if self._path is None:
            raise ConfigurationError(
                "custom_profiles_path is not configured; cannot save custom profiles"
            )
        stored = self._read_file(self._path)
        stored[profile_id] = profile.model_dump(by_alias=True)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(stored, indent=2), encoding="utf-8")
        except OSError as exc:
            raise StateError(f"Cannot write custom profiles to {self._path}: {exc}") from exc
        self._profiles[profile_id] = profile
        self._logger.info("custom_profile_saved", profile_id=profile_id)

    def get(self, profile_id: str | None) -> Profile:
        return self._profiles.get(profile_id or DEFAULT_PROFILE_ID) or self._profiles[
            DEFAULT_PROFILE_ID
        ]

    def resolve_id(self, profile_id: str | None) -> str:
        """The id actually used for ``profile_id``."""
        return profile_id if profile_id in self._profiles else DEFAULT_PROFILE_ID

    def list_profiles(self) -> list[ProfileSummary]:
        return [
            ProfileSummary(id=profile_id, name=p.name, tone=p.tone, focus=p.focus)
            for profile_id, p in self._profiles.items()
        ]

    def build_prompt(
        self,
        profile_id: str | None,
        context: str,
        question: str,
        custom_instructions: str | None = None,
    ) -> BuiltPrompt:
        """Assemble the system and user prompts for one question."""
        profile = self.get(profile_id)
        system_prompt = profile.system_prompt

        if profile_id == CUSTOM_PROFILE_ID and custom_instructions:
            system_prompt += f"\n\nUser's custom instructions:\n{custom_instructions}"

        system_prompt += "\n\n"

        if profile.focus:
            system_prompt += f"Focus specifically on: {', '.join(profile.focus)}.\n"
            system_prompt += "Ignore or briefly mention other topics.\n\n"

        system_prompt += FORMATTING_REQUIREMENTS
        system_prompt += TONE_INSTRUCTIONS.get(profile.tone, "")

        return BuiltPrompt(
            system_prompt=system_prompt,
            user_prompt=USER_PROMPT_TEMPLATE.format(context=context, question=question),
            temperature=profile.temperature,
        )
