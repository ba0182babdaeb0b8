"""Digest email summary prompt builder."""

from __future__ import annotations

from typing import Any

from mundus.schemas.digest import CandidateStory, RecipientProfile, TopicProfile

SUMMARY_SCHEMA_NAME = "digest_email"


def summary_schema(subject_max_chars: int = 60) -> dict[str, Any]:
    return {
        "type": "object",
        "additionalProperties": False,
        "required": ["subject", "body_html", "key_highlights"],
        "properties": {
            "subject": {"type": "string", "maxLength": subject_max_chars},
            "body_html": {"type": "string"},
            "key_highlights": {
                "type": "array",
                "items": {"type": "string"},
                "minItems": 3,
                "maxItems": 4,
            },
        },
    }


LANGUAGE_NAMES = {
    "en": "English",
    "sv": "Swedish",
    "no": "Norwegian",
    "da": "Danish",
    "fi": "Finnish",
}


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get((code or "").lower(), "English")


def build_summary_prompt(
    main_stories: list[CandidateStory],
    recipient: RecipientProfile,
    profile: TopicProfile,
    story_limit: int = 5,
    subject_max_chars: int = 60,
    signature: str = "The Mundus Team",
) -> str:
    language = language_name(profile.language)
    topic_list = ", ".join(profile.topics) or "General news"
    organization = profile.organization or recipient.organization or "Not specified"
    story_lines = "\n".join(
        f"{i}. {story.title}{' (continued)' if story.continued_from_previous else ''}"
        for i, story in enumerate(main_stories[:story_limit], 1)
    )

    return f"""You are writing a personalized email to accompany a digest report.

CLIENT INFORMATION:
- Name: {recipient.name}
- Topics of Interest: {topic_list}
- Language: {language}
- Organization: {organization}

DIGEST CONTENT:
The digest contains {len(main_stories)} main stories:

{story_lines or '(no main stories)'}

REQUIREMENTS:

1. subject (max {subject_max_chars} characters): mention the key topic and, if space allows,
   the most significant story.

2. body_html (2-3 paragraphs, HTML using <p>, <ul>, <li>, <br>):
   - Greeting "Dear {recipient.name}," and the key theme of this digest
   - 3-4 concise bullet highlights
   - An invitation to reply with feedback, closing with "Best regards,<br>{signature}"

3. key_highlights: 3-4 one-sentence highlights focused on impact.

Write EVERYTHING in natural, fluent {language}; translate story titles if needed.
Tone: professional but warm, concise and scannable."""
