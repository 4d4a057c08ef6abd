"""CLI entry-point — run a solo maturity diagnostic in the terminal.

Usage:
    python -m diagnostic.main
    python -m diagnostic.main --interview-id <id>   # resume
    # or via pyproject entry-point:  diagnostic
"""

from __future__ import annotations

import argparse

from dotenv import load_dotenv

from diagnostic.errors import DiagnosticError, TurnLimitReachedError
from diagnostic.identity import Account
from diagnostic.logging_config import setup_logging
from diagnostic.models.state import Speaker
from diagnostic.repository import SessionScope
from diagnostic.services import build_services
from diagnostic.settings import DIMENSION_KEYS

load_dotenv()


BANNER = """
╔══════════════════════════════════════════════════════════════╗
║          AI Digital Maturity Diagnostic (text mode)         ║
║                                                             ║
║  Answer the consultant's questions about your business.     ║
║  Type 'finish' when you are done to generate the report.    ║
║  Type 'quit' to leave and resume later.                     ║
╚══════════════════════════════════════════════════════════════╝
"""


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--interview-id", help="resume an existing solo interview")
    parser.add_argument("--uid", default="local-owner", help="owner account id")
    parser.add_argument("--email", default="owner@localhost", help="owner contact")
    return parser.parse_args(argv)


def _print_report(report: dict) -> None:
    print("\n" + "═" * 60)
    print("DIAGNOSTIC COMPLETE")
    print("═" * 60)
    print(f"Overall score    : {report['overall_score']}")
    print(f"Strongest area   : {report['strongest_area']}")
    print(f"Main opportunity : {report['main_opportunity']}")
    print()
    for key in DIMENSION_KEYS:
        dim = report["dimensions"][key]
        print(f"  {key:<12} {dim['score']}/5  {dim['level']}")
    print()
    print(report["executive_summary"])
    print("═" * 60)


def main(argv: list[str] | None = None) -> None:
    setup_logging()
    args = _parse_args(argv)
    print(BANNER)

    services = build_services(voice=False)
    repository = services.repository
    owner = Account(uid=args.uid, email=args.email)

    if args.interview_id:
        interview = repository.get_interview(args.interview_id)
    else:
        interview = repository.create_solo(owner)
    print(f"Interview id: {interview.id}\n")

    session = services.new_session(interview, owner.email)
    replayed = session.visible_history()
    for turn in replayed:
        label = "Consultant" if turn.speaker is Speaker.AGENT else "You"
        print(f"{label}: {turn.text}")

    result = session.start(account_id=owner.uid)
    if result.status == "finished":
        print("This interview is already finished.")
    elif result.status == "retry":
        print(f"\n(The consultant could not start: {result.error}. Say hello to retry.)\n")
    elif result.reply and not replayed:
        print(f"\n🎙️  Consultant: {result.reply}\n")

    while not session.machine.finished:
        try:
            user_input = input("You: ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nSession paused. Resume with --interview-id", interview.id)
            return

        if user_input.lower() == "quit":
            print("\nSession paused. Resume with --interview-id", interview.id)
            return

        if user_input.lower() == "finish":
            print("\nFinishing the interview and compiling the report…")
            session.finish()
            break

        try:
            result = session.submit_text(user_input)
        except TurnLimitReachedError as e:
            print(f"\n{e}")
            continue
        except DiagnosticError as e:
            print(f"\nCould not process that answer: {e}")
            continue

        if result.status == "retry":
            print(f"\n(The consultant could not answer: {result.error}. Please try again.)\n")
            continue
        print(f"\n🎙️  Consultant: {result.reply}   [{result.progress:.0f}%]\n")

    report = repository.get_report(SessionScope(interview.id))
    if report:
        _print_report(report)
    else:
        print("No report is available for this interview yet.")


if __name__ == "__main__":
    main()
