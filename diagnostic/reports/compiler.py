"""Report compiler — turns interview transcripts into a scored report.

The report model is asked for a strict JSON object, but its output still
needs cleanup before it matches the canonical ``Report`` shape:

  - a single layer of markdown code fences is stripped;
  - field names arrive in mixed casing (``Analysis``, ``overallScore``,
    ``ShortTerm``) and are collapsed to the canonical snake_case set;
  - the result is validated; anything unusable raises
    ``ReportGenerationError`` and nothing is persisted.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Sequence

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import ValidationError

from diagnostic.errors import ReportGenerationError
from diagnostic.models.report import Report
from diagnostic.settings import DIMENSION_KEYS

logger = logging.getLogger(__name__)

REPORT_PROMPT = """\
You are a senior digital strategy and technology consultant (CIO/CDO)
with experience in business transformation. Analyze the interview
transcript and produce a highly professional, detailed "Executive Digital
and AI Maturity Report".

SCOPE:
{scope}

GOAL: a frank but constructive diagnosis in an executive, formal and
direct tone. Avoid generalities; ground every statement in what the
participants said.

Evaluate seven dimensions: strategy, culture, processes, data,
analytics, technology, governance. For each dimension give:
- score: integer 1-5
- level: one of "Initial", "Basic", "Intermediate", "Advanced", "Optimized"
- analysis: a detailed paragraph (50-70 words) on the current state that
  cites evidence from the interview. If information is thin, infer from
  context, but never leave it empty.
- recommendation: one concrete strategic action.

Also compute:
- overallScore: average of the dimension scores (one decimal)
- strongestArea: name of the strongest dimension
- mainOpportunity: name of the most critical dimension
- executiveSummary: 2-3 paragraphs (150-200 words) on the current state,
  the risk of not acting, and the vision ahead.

Strategic roadmap with initiatives for EACH of the three horizons
(shortTerm, mediumTerm, longTerm). Every initiative MUST have:
- title
- impact: "High", "Medium" or "Low"
- description: very short and catchy (max 25 words)
- objective: detailed business objective (expected KPIs, strategic value,
  estimated ROI)
- steps: 6-10 detailed implementation steps (technologies, roles,
  validations)

RESPOND WITH VALID JSON ONLY, exactly this shape:
{{
  "overallScore": 0.0,
  "strongestArea": "",
  "mainOpportunity": "",
  "executiveSummary": "",
  "dimensions": {{
    "strategy": {{"score": 1, "level": "", "analysis": "", "recommendation": ""}},
    "culture": {{...}}, "processes": {{...}}, "data": {{...}},
    "analytics": {{...}}, "technology": {{...}}, "governance": {{...}}
  }},
  "roadmap": {{
    "shortTerm": [{{"title": "", "impact": "", "description": "", "objective": "", "steps": [""]}}],
    "mediumTerm": [...],
    "longTerm": [...]
  }}
}}
"""

SCOPE_INDIVIDUAL = (
    "Individual report for one leader/role. Use their own answers as evidence."
)
SCOPE_AGGREGATE = (
    "Consolidated organization report. Identify patterns, silos and consensus "
    "across participants."
)

_FENCE = re.compile(r"^```[A-Za-z0-9_-]*\s*(.*?)\s*```$", re.DOTALL)

_SQUASH = re.compile(r"[\s_\-]")

_CANONICAL_KEYS: dict[str, str] = {
    "overallscore": "overall_score",
    "strongestarea": "strongest_area",
    "strongestdimension": "strongest_area",
    "mainopportunity": "main_opportunity",
    "primaryopportunity": "main_opportunity",
    "executivesummary": "executive_summary",
    "dimensions": "dimensions",
    "roadmap": "roadmap",
    "score": "score",
    "level": "level",
    "analysis": "analysis",
    "recommendation": "recommendation",
    "shortterm": "short_term",
    "now": "short_term",
    "mediumterm": "medium_term",
    "next": "medium_term",
    "longterm": "long_term",
    "future": "long_term",
    "title": "title",
    "impact": "impact",
    "description": "description",
    "desc": "description",
    "objective": "objective",
    "steps": "steps",
    **{key: key for key in DIMENSION_KEYS},
}


def _canonical(key: str) -> str:
    squashed = _SQUASH.sub("", key).lower()
    return _CANONICAL_KEYS.get(squashed, key.lower())


def normalize_keys(value: Any) -> Any:
    """Recursively collapse mixed-case field names to the canonical set.

    When two spellings collapse to the same field, a non-empty value under
    the already-canonical spelling wins.
    """
    if isinstance(value, list):
        return [normalize_keys(v) for v in value]
    if not isinstance(value, dict):
        return value

    result: dict[str, Any] = {}
    # Canonical spellings first so they take precedence over variants.
    items = sorted(value.items(), key=lambda kv: _canonical(kv[0]) != kv[0])
    for key, item in items:
        target = _canonical(key)
        if target in result and result[target] not in (None, "", [], {}):
            continue
        result[target] = normalize_keys(item)
    return result


def parse_report_payload(raw: str) -> dict[str, Any]:
    """Parse JSON from model output, stripping one layer of code fences."""
    text = raw.strip()
    match = _FENCE.match(text)
    if match:
        text = match.group(1)
    payload = json.loads(text)
    if not isinstance(payload, dict):
        raise ValueError("Report payload is not a JSON object")
    return payload


def normalize_report(raw: str) -> dict[str, Any]:
    """Raw model output → canonical report dict (or ``ReportGenerationError``)."""
    try:
        payload = parse_report_payload(raw)
        report = Report.model_validate(normalize_keys(payload))
    except json.JSONDecodeError as e:
        logger.warning("Report payload is not valid JSON: %s", e)
        raise ReportGenerationError(f"Report payload is not valid JSON: {e}") from e
    except (ValidationError, TypeError, ValueError, OverflowError) as e:
        logger.warning("Report payload has the wrong shape: %s", e)
        raise ReportGenerationError(f"Report payload has the wrong shape: {e}") from e
    return report.model_dump()


def _response_text(content: Any) -> str:
    """Normalize LangChain message content into a text string."""
    if isinstance(content, str):
        return content
    return json.dumps(content)


def format_transcript(turns: Sequence[tuple[str, str]]) -> str:
    return "\n".join(f"{speaker}: {text}" for speaker, text in turns)


class ReportCompiler:
    """Report collaborator: ``compile(transcript) -> report dict``."""

    def __init__(self, llm: ChatOpenAI) -> None:
        self._llm = llm

    def compile(
        self,
        transcript: str | Sequence[tuple[str, str]],
        *,
        individual: bool = False,
    ) -> dict[str, Any]:
        text = transcript if isinstance(transcript, str) else format_transcript(transcript)
        if not text.strip():
            raise ReportGenerationError("Transcript is empty; nothing to analyze.")

        system = SystemMessage(
            content=REPORT_PROMPT.format(
                scope=SCOPE_INDIVIDUAL if individual else SCOPE_AGGREGATE
            )
        )
        user_msg = HumanMessage(content=f"Transcript:\n{text}\n\nGenerate the JSON report.")
        try:
            response = self._llm.invoke([system, user_msg])
        except Exception as e:  # noqa: BLE001 — surfaced as a report failure
            logger.warning("Report LLM call failed: %s", e)
            raise ReportGenerationError(f"Report generation failed: {e}") from e

        raw = _response_text(response.content)
        if not raw.strip():
            raise ReportGenerationError("The report model returned no content.")
        return normalize_report(raw)
