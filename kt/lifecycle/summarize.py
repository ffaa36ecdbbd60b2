"""Prompts and the model-backed Summarizer.

The compaction and digest prompts are plain functions of their inputs so
they can be inspected (and tested) without a model. ``ModelSummarizer``
turns any ModelProtocol into a Summarizer that never raises.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Optional

from kt.protocols import ModelError, ModelMessage, ModelProtocol, SynthesisResult, Unavailable
from kt.types import Link, Node

if TYPE_CHECKING:
    from kt.utils import KtConfig

logger = logging.getLogger(__name__)

COMPACTION_MAX_TOKENS = 1024
DIGEST_MAX_TOKENS = 2048


def _describe_nodes(nodes: Iterable[Node], separator: str) -> str:
    ordered = sorted(nodes, key=lambda n: (n.created_at or "", n.id))
    parts = []
    for n in ordered:
        title = f"**{n.title}**" if n.title else "(untitled)"
        tags = f" [tags: {', '.join(n.tags)}]" if n.tags else ""
        parts.append(f"### {n.id}: {title}{tags}\nCaptured: {n.created_at}\n\n{n.content}")
    return separator.join(parts)


def build_compaction_prompt(nodes: Iterable[Node]) -> str:
    """Prompt asking for one concise summary of a cluster, members oldest first."""
    descriptions = _describe_nodes(nodes, "\n\n---\n\n")
    return f"""You are compacting a cluster of related knowledge nodes into a single summary.

These nodes were captured over time and are now being consolidated. Your job is to produce one concise summary that preserves the essential knowledge.

## Rules

- Preserve all **decisions** and their **rationale** (why something was chosen)
- Preserve **current state** (what is true now, not what was true before)
- When nodes contradict each other, keep the **most recent** information
- Drop **outdated details** that have been superseded
- Keep it **concise**: aim for 2-5 sentences that capture the essence
- Do NOT add commentary or analysis; just distill the knowledge
- Output ONLY the summary text, no headers or metadata

## Nodes to Compact

{descriptions}

## Summary"""


def build_digest_prompt(
    nodes: Iterable[Node],
    links: Iterable[Link],
    project_context: Optional[str] = None,
) -> str:
    """Prompt asking for a structured briefing of recent nodes in a namespace."""
    descriptions = _describe_nodes(nodes, "\n\n")

    link_lines = [
        f"- {link.source_id} **{link.link_type}** {link.target_id}"
        + (f": {link.context}" if link.context else "")
        for link in links
    ]
    link_section = (
        "\n## Relationships Between Nodes\n\n" + "\n".join(link_lines) + "\n" if link_lines else ""
    )
    context_section = (
        f"\n## Project Context\n\n{project_context}\n" if project_context else ""
    )

    return f"""You are generating a knowledge digest: a structured briefing of recent knowledge captured in a project namespace.

Your job is to synthesize the nodes below into a coherent, readable briefing that helps someone quickly understand what's been happening.
{context_section}
## Recent Knowledge Nodes

{descriptions}
{link_section}
## Output Format

Produce a markdown briefing with these sections. Omit any section that has no relevant content.

### Summary
2-3 sentences: what is this namespace about and what has been happening recently.

### Key Topics
Group knowledge by theme (not chronologically). Each topic gets a short paragraph describing the current state of knowledge.

### Decisions & Rationale
Any decisions captured, with their reasoning. Preserve the "why"; this is the most valuable part.

### Open Threads
Things that feel unresolved: contradictions between nodes, stale knowledge that may need updating, questions without clear answers.

### Alerts
Conflicts or stale knowledge that needs attention. Only include if present.

## Rules

- Be concise: this is a briefing, not a report
- Preserve specifics: names, numbers, dates, technical choices
- Group by theme, not by date
- If nodes contradict each other, surface this in Open Threads
- Do NOT add your own analysis or recommendations; just synthesize what's captured
- Output ONLY the briefing markdown, no preamble"""


class ModelSummarizer:
    """Summarizer that routes prompts to a ModelProtocol.

    Provider errors come back as Unavailable, never as exceptions.
    """

    def __init__(self, model: ModelProtocol, *, max_tokens: int = COMPACTION_MAX_TOKENS) -> None:
        self._model = model
        self._max_tokens = max_tokens

    @property
    def model_id(self) -> str:
        return self._model.model_id

    def synthesize(self, prompt: str) -> SynthesisResult:
        try:
            response = self._model.generate(
                [ModelMessage(role="user", content=prompt)],
                max_tokens=self._max_tokens,
            )
        except ModelError as e:
            logger.warning(f"Summarization failed ({e.error_class}): {e}")
            return Unavailable(f"{e.error_class}: {e}")

        text = (response.content or "").strip()
        if not text:
            return Unavailable("Model returned an empty response")
        return text


class NullSummarizer:
    """Summarizer used when no model can be configured."""

    def __init__(self, reason: str) -> None:
        self.reason = reason

    def synthesize(self, prompt: str) -> SynthesisResult:
        return Unavailable(self.reason)


def build_summarizer(config: "KtConfig", *, max_tokens: int = COMPACTION_MAX_TOKENS):
    """Anthropic-backed summarizer, or a NullSummarizer explaining why not."""
    if not config.api_key:
        return NullSummarizer(
            "No API key configured. Set CLAUDE_API_KEY or ANTHROPIC_API_KEY."
        )
    try:
        from kt.models.anthropic import AnthropicModel

        model = AnthropicModel(config.summary_model, api_key=config.api_key, max_tokens=max_tokens)
    except (ImportError, ValueError) as e:
        logger.warning(f"Summarizer unavailable: {e}")
        return NullSummarizer(str(e))
    return ModelSummarizer(model, max_tokens=max_tokens)
