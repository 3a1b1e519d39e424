import json

from interview_session.models import GuidanceEvent
from observability.admin_cli import main
from services.adherence import compute_adherence_summary
from storage.guidance import upsert_adherence_summary, upsert_guidance_events
from storage.sessions import create_session


def _seed():
    session_id = create_session(collection_id="c1", template_id="t1", project_id="p1")
    events = [
        GuidanceEvent(
            index=0,
            action="probe_followup",
            confidence=0.8,
            injected=True,
            timestamp=5000,
            question_index=0,
            adherence="followed",
        )
    ]
    upsert_guidance_events(session_id, events)
    upsert_adherence_summary(session_id, compute_adherence_summary(events))
    return session_id


def test_tail_commands(capsys):
    session_id = _seed()
    main(["--tail-guidance", "5", "--tail-adherence", "5"])
    out = capsys.readouterr().out
    assert f"{session_id}#0 q=0 probe_followup conf=0.80 injected=True adherence=followed" in out
    assert f"{session_id} rate=1.00" in out


def test_collection_report(capsys):
    _seed()
    main(["--collection", "c1", "--from", "1970-01-01T00:00:04Z"])
    out = capsys.readouterr().out
    report = json.loads(out[out.index("{"):])
    assert report["scope"] == {"level": "collection", "id": "c1"}
    assert report["adherence"]["followed_count"] == 1
    assert report["window"]["from_ms"] == 4000


def test_project_and_template_reports(capsys):
    _seed()
    create_session(collection_id="c9", template_id="t9", project_id="p9")

    main(["--project", "p1"])
    out = capsys.readouterr().out
    report = json.loads(out[out.index("{"):])
    assert report["scope"] == {"level": "project", "id": "p1"}
    assert report["coverage"]["sessions_visited"] == 1

    main(["--template", "t9"])
    out = capsys.readouterr().out
    report = json.loads(out[out.index("{"):])
    assert report["scope"] == {"level": "template", "id": "t9"}
    assert report["coverage"]["sessions_with_guidance"] == 0
