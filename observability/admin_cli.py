"""Lightweight CLI helpers for inspecting guidance and adherence tables."""
from __future__ import annotations

import argparse
from typing import Callable, Dict, List, Optional, Sequence

from services.aggregation import AggregationScope, AggregationWindow, SessionRecord, aggregate_guidance
from storage.sessions import load_collection_sessions, load_project_sessions, load_template_sessions
from storage.sqlite import get_conn

SCOPE_LOADERS: Dict[str, Callable[[str], List[SessionRecord]]] = {
    "collection": load_collection_sessions,
    "template": load_template_sessions,
    "project": load_project_sessions,
}


def tail_guidance(limit: int = 20) -> None:
    with get_conn() as conn:
        rows = conn.execute(
            """
            SELECT session_id, event_index, question_index, action, confidence, injected, adherence
            FROM guidance_events
            ORDER BY id DESC
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
    for row in rows:
        print(
            f"{row['session_id']}#{row['event_index']} q={row['question_index']} "
            f"{row['action']} conf={row['confidence']:.2f} injected={bool(row['injected'])} "
            f"adherence={row['adherence'] or '-'}"
        )


def tail_adherence(limit: int = 20) -> None:
    with get_conn() as conn:
        rows = conn.execute(
            """
            SELECT session_id, computed_at, overall_adherence_rate
            FROM adherence_summaries
            ORDER BY id DESC
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
    for row in rows:
        print(f"[{row['computed_at']}] {row['session_id']} rate={row['overall_adherence_rate']:.2f}")


def report_scope(level: str, scope_id: str, *, window_from: Optional[str] = None, window_to: Optional[str] = None) -> None:
    result = aggregate_guidance(
        SCOPE_LOADERS[level](scope_id),
        AggregationScope(level=level, id=scope_id),
        AggregationWindow(**{"from": window_from, "to": window_to}),
    )
    print(result.model_dump_json(indent=2))


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--tail-guidance", type=int, help="Show the latest guidance events")
    parser.add_argument("--tail-adherence", type=int, help="Show the latest per-session adherence summaries")
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument("--collection", help="Print the guidance aggregation for a collection")
    scope.add_argument("--template", help="Print the guidance aggregation for a template")
    scope.add_argument("--project", help="Print the guidance aggregation for a project")
    parser.add_argument("--from", dest="window_from", help="Window start (ISO timestamp)")
    parser.add_argument("--to", dest="window_to", help="Window end (ISO timestamp)")
    args = parser.parse_args(argv)

    if args.tail_guidance:
        tail_guidance(args.tail_guidance)
    if args.tail_adherence:
        tail_adherence(args.tail_adherence)
    for level in SCOPE_LOADERS:
        scope_id = getattr(args, level)
        if scope_id:
            report_scope(level, scope_id, window_from=args.window_from, window_to=args.window_to)


if __name__ == "__main__":
    main()
