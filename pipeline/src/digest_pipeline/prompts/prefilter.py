"""Relevance pre-filter prompt builder."""

from __future__ import annotations

from mundus.schemas.digest import CandidateDocument, TopicProfile

TOPIC_KEYWORD_HINTS = {
    "energy": (
        "solar, wind, batteries, hydrogen, nuclear, grid, power generation, electric vehicles, "
        "energy storage, charging infrastructure, renewable energy, fossil fuels, energy policy, "
        "power plants, electricity transmission"
    ),
    "technology": (
        "software, hardware, AI, machine learning, digital transformation, innovation, startups, "
        "tech companies, platforms, SaaS, cloud computing, cybersecurity"
    ),
    "healthcare": (
        "medical treatments, pharmaceuticals, hospitals, clinical trials, drugs, patient care, "
        "health technology, biotechnology, medical devices"
    ),
    "finance": (
        "banking, investments, stock market, trading, financial services, funds, capital markets, "
        "fintech, cryptocurrencies"
    ),
    "politics": (
        "government policy, elections, legislation, political parties, ministers, parliament, "
        "public policy, regulations"
    ),
}


def build_topic_keyword_hints(topics: list[str], keywords: list[str] | None = None) -> str:
    hints = [TOPIC_KEYWORD_HINTS.get(topic.strip().lower(), topic) for topic in topics]
    hints.extend(keywords or [])
    return ", ".join(hints)


def format_documents_for_prefilter(
    documents: list[CandidateDocument], summary_truncation: int = 300
) -> str:
    blocks = []
    for i, doc in enumerate(documents, 1):
        summary = (doc.body or "No summary available")[:summary_truncation]
        blocks.append(
            f"[{i}] ID: {doc.id}\n"
            f"Title: {doc.title or 'Untitled'}\n"
            f"Source: {doc.source_name}\n"
            f"Summary: {summary}\n"
        )
    return "\n".join(blocks)


def build_prefilter_prompt(
    documents: list[CandidateDocument],
    profile: TopicProfile,
    recipient_name: str,
    target_count: int = 100,
    min_score: int = 5,
    summary_truncation: int = 300,
) -> str:
    topic_list = ", ".join(profile.topics)
    category_list = ", ".join(profile.categories) or "all categories"
    keyword_hints = build_topic_keyword_hints(profile.topics, profile.keywords)
    brief = f"\nCLIENT BRIEF: {profile.brief}\n" if profile.brief else ""
    article_text = format_documents_for_prefilter(documents, summary_truncation)

    return f"""You are a content curator for {recipient_name}, filtering articles by topic relevance.

CLIENT TOPICS: {topic_list}
SOURCE CATEGORIES: {category_list}
{brief}
These articles are already limited to {category_list}.
You are looking for {category_list} articles ABOUT {topic_list}.

Example: if the topic is "Energy" and categories are "Business, Technology, Politics":
- Business article about solar company deals -> RELEVANT
- Technology article about battery innovations -> RELEVANT
- Politics article about energy policy -> RELEVANT
- Business article about a pharma company -> NOT RELEVANT
- Banking article (even if the company name contains "sol") -> NOT RELEVANT

Select the top {target_count} articles MOST RELEVANT to these topics using semantic understanding.

For "{topic_list}", look for articles about:
{keyword_hints}

SEMANTIC RULES:
- Use semantic understanding, NOT keyword matching
- Articles ABOUT {topic_list} companies or developments are relevant
- Articles that MENTION {topic_list} in passing are NOT relevant
- Company names containing topic fragments are NOT automatically relevant
- Articles may be in Swedish or other Nordic languages: "kraft" (power/force),
  "vind" (wind/gain), "sol" (sun). "Megasol" banking is not solar energy and
  "kraftigt vinst" (significant profit) is not power generation.

RELEVANCE SCORING (0-10):
- 9-10: directly about {topic_list} with significant developments
- 7-8: clearly related to {topic_list} and newsworthy
- 5-6: tangentially related to {topic_list}
- 3-4: mentions {topic_list} but is not about it
- 0-2: unrelated, including surface-string false positives

SELECTION CRITERIA:
- Keep articles scoring {min_score} or higher
- Select up to {target_count} articles (fewer if not enough are relevant)
- Prefer higher scores and give a short reason (max 150 characters) for each

ARTICLES TO FILTER ({len(documents)} total):

{article_text}
Return ONLY a JSON object, no prose:
{{
  "filtered_articles": [
    {{"article_id": "ID from the list", "relevance_score": 8, "relevance_reason": "why"}}
  ],
  "excluded_count": 0,
  "filtering_notes": "optional"
}}"""
