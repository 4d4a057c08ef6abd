"""LangGraph workflow — report generation as a small stateful graph.

Flow:
    START → gather_transcript → router → compile → persist → END
                                      ↘ END   (nothing was said yet)

The graph is compiled once per ``ReportService`` with its repository and
compiler bound into the nodes, so no module-level handles are involved.
Errors raised by a node (``ReportGenerationError`` from the compiler)
propagate out of ``invoke`` unchanged; nothing is persisted in that case
and any previous report is kept.
"""

from __future__ import annotations

import logging
from typing import Any, TypedDict

from langgraph.graph import END, START, StateGraph
from langgraph.types import Command

from diagnostic.identity import normalize_contact
from diagnostic.reports.compiler import ReportCompiler
from diagnostic.reports.transcript import build_transcript
from diagnostic.repository import InterviewRepository, SessionScope

logger = logging.getLogger(__name__)


class ReportState(TypedDict, total=False):
    interview_id: str
    # Contact of the participant for an individual report; None for the
    # interview-level (solo or consolidated) report.
    participant: str | None
    individual: bool
    transcript: str
    report: dict[str, Any] | None


def build_report_graph(repository: InterviewRepository, compiler: ReportCompiler):
    """Construct and compile the report StateGraph."""

    def gather_transcript(state: ReportState) -> dict:
        interview = repository.get_interview(state["interview_id"])
        participant = state.get("participant") if interview.is_multi else None
        return {
            "participant": participant,
            "individual": participant is not None,
            "transcript": build_transcript(repository, interview, participant),
        }

    def router(state: ReportState) -> Command:
        if not state.get("transcript", "").strip():
            logger.info(
                "No transcript for interview %s (participant=%s); skipping report",
                state["interview_id"],
                state.get("participant"),
            )
            return Command(update={"report": None}, goto=END)
        return Command(goto="compile")

    def compile_report(state: ReportState) -> dict:
        report = compiler.compile(state["transcript"], individual=state.get("individual", False))
        return {"report": report}

    def persist(state: ReportState) -> dict:
        scope = SessionScope(state["interview_id"], state.get("participant"))
        repository.save_report(scope, state["report"])
        logger.info(
            "Saved report for interview %s (participant=%s), overall %.1f",
            state["interview_id"],
            state.get("participant"),
            state["report"]["overall_score"],
        )
        return {}

    graph = StateGraph(ReportState)

    graph.add_node("gather_transcript", gather_transcript)
    graph.add_node("router", router)
    graph.add_node("compile", compile_report)
    graph.add_node("persist", persist)

    graph.add_edge(START, "gather_transcript")
    graph.add_edge("gather_transcript", "router")
    # router uses Command to go to "compile" or END
    graph.add_edge("compile", "persist")
    graph.add_edge("persist", END)

    return graph.compile()


class ReportService:
    """Generate and persist reports for sessions and interviews."""

    def __init__(self, repository: InterviewRepository, compiler: ReportCompiler) -> None:
        self.repository = repository
        self.compiler = compiler
        self._graph = build_report_graph(repository, compiler)

    def generate(self, interview_id: str, participant: str | None = None) -> dict[str, Any] | None:
        """Compile and save a report; ``None`` when there is no transcript.

        With ``participant`` set on a multi-participant interview the report
        is individual and saved on that Session; otherwise it covers the
        whole interview and is saved on the Interview document.
        """
        state: ReportState = {
            "interview_id": interview_id,
            "participant": normalize_contact(participant) or None,
        }
        result = self._graph.invoke(state)
        return result.get("report")
