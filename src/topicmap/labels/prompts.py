"""LLM prompts for cluster labeling and parsing of their JSON replies."""

import json
import logging
import re
from collections.abc import Sequence
from typing import Any

logger = logging.getLogger(__name__)

LABEL_SYSTEM_PROMPT = """You name keyword clusters for a knowledge map.
Reply with a single JSON object and nothing else."""

GENERATE_LABELS_PROMPT = """You are labeling keyword clusters for a knowledge graph visualization.

Each cluster contains semantically related keywords. Generate a SHORT label (2-4 words) that captures what the cluster is about.

Clusters:
{clusters}

Return a JSON object mapping cluster IDs to labels, like:
{{"0": "machine learning basics", "1": "web development", "2": "data structures"}}

Labels should be:
- Descriptive but concise (1-4 words)
- In lowercase
- Capture the common theme, not just list keywords

Return ONLY the JSON object."""

REFINE_LABELS_PROMPT = """You previously labeled some keyword clusters. The cluster membership has changed slightly.

For each cluster, decide if the label still fits or needs updating.

{refinements}

Return a JSON object mapping cluster IDs to either:
- "keep" if the label still fits
- A new label (1-2 words, rarely 3 if needed for specificity)

Example: {{"0": "keep", "1": "neural networks", "2": "keep"}}

Return ONLY the JSON object."""

KEEP_LABEL = "keep"

_THINKING_PATTERNS = [
    re.compile(r"<think>[\s\S]*?</think>", re.DOTALL),
    re.compile(r"<thinking>[\s\S]*?</thinking>", re.DOTALL),
]

_CODE_BLOCK_PATTERNS = [
    re.compile(r"```json\s*([\s\S]*?)\s*```", re.DOTALL),
    re.compile(r"```\s*([\s\S]*?)\s*```", re.DOTALL),
]

_JSON_OBJECT_PATTERN = re.compile(r"(\{[\s\S]*\})", re.DOTALL)


def _truncate(keywords: Sequence[str], limit: int) -> str:
    text = ", ".join(keywords[:limit])
    if len(keywords) > limit:
        text += "..."
    return text


def format_generate_prompt(
    clusters: Sequence[tuple[int, Sequence[str]]],
    max_keywords: int = 15,
) -> str:
    """Build the generation prompt from (cluster_id, keywords) pairs."""
    lines = [f"{cid}: {_truncate(list(keywords), max_keywords)}" for cid, keywords in clusters]
    return GENERATE_LABELS_PROMPT.format(clusters="\n".join(lines))


def format_refine_prompt(
    refinements: Sequence[tuple[int, str, Sequence[str], Sequence[str]]],
    max_keywords: int = 10,
) -> str:
    """Build the refinement prompt from (cluster_id, old_label, old_keywords, new_keywords)."""
    blocks = []
    for cid, old_label, old_keywords, new_keywords in refinements:
        blocks.append(
            f"{cid}:\n"
            f'  Previous label: "{old_label}"\n'
            f"  Previous keywords: {', '.join(list(old_keywords)[:max_keywords])}\n"
            f"  Current keywords: {', '.join(list(new_keywords)[:max_keywords])}"
        )
    return REFINE_LABELS_PROMPT.format(refinements="\n\n".join(blocks))


def strip_thinking(text: str) -> str:
    """Remove complete thinking blocks and orphan tags from model output."""
    result = text
    for pattern in _THINKING_PATTERNS:
        result = pattern.sub("", result)
    result = re.sub(r"</?think(?:ing)?>", "", result)
    return result.strip()


def parse_json(raw_output: str, fallback: Any = None) -> Any:
    """
    Parse JSON from LLM output.

    Handles:
    - Thinking tags before/around JSON
    - Markdown code blocks
    - Prose around a JSON object
    """
    if not raw_output:
        return fallback

    text = strip_thinking(raw_output)
    if not text:
        return fallback

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    for pattern in _CODE_BLOCK_PATTERNS:
        match = pattern.search(text)
        if match:
            try:
                return json.loads(match.group(1))
            except json.JSONDecodeError:
                continue

    match = _JSON_OBJECT_PATTERN.search(text)
    if match:
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            pass

    logger.warning(f"Failed to parse JSON from output: {text[:200]}...")
    return fallback


def parse_label_map(raw_output: str) -> dict[int, str]:
    """
    Parse a ``{"<cluster id>": "<label>"}`` reply.

    Non-integer keys and empty or non-string labels are skipped.

    Raises:
        ValueError: if the output holds no JSON object
    """
    data = parse_json(raw_output)
    if not isinstance(data, dict):
        raise ValueError(f"Could not parse label response as JSON object: {raw_output[:200]}")

    labels: dict[int, str] = {}
    for key, value in data.items():
        try:
            cluster_id = int(key)
        except (TypeError, ValueError):
            continue
        if isinstance(value, str) and value.strip():
            labels[cluster_id] = value.strip()
    return labels
