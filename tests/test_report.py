import json

from catalog import question_label
from funnel import FunnelSession, LeadRecord, build_record
from insights import MAX_TOP_INSIGHTS
from report import (
    NEXT_STEPS,
    assemble,
    email_body,
    email_subject,
    pdf_filename,
    render_json,
    render_pdf,
    sanitize_for_pdf,
)
from scoring import Band

RECORD_ID = "3f2b9c1e-8d4a-4c3b-9e2f-1a2b3c4d5e6f"


def _record(answers):
    session = FunnelSession(name="Dr. Sara", email="sara@clinic.com", location="Riyadh", answers=answers)
    return build_record(session, RECORD_ID, "2025-03-01T09:30:00+00:00")


def test_assemble_builds_presentation_view():
    record = _record({"q1": "yes", "q2": "no", "q12": "Save staff time", "q16": "4", "q17": "9"})
    view = assemble(record)

    assert view.record_id == RECORD_ID
    assert view.name == "Dr. Sara"
    assert view.band is Band.RED
    assert view.score_line == "Score: 10% (Red - Major gaps)"
    assert view.next_step == NEXT_STEPS[Band.RED]
    assert list(view.insights) == list(record.insights)
    assert len(view.top_insights) == MAX_TOP_INSIGHTS
    assert list(view.top_insights) == list(record.insights[:MAX_TOP_INSIGHTS])


def test_answer_lines_use_catalog_labels():
    view = assemble(_record({"q1": "y", "q2": "", "q12": "Save staff time"}))
    lines = {line.question_id: line for line in view.answers}

    assert [line.question_id for line in view.answers][:3] == ["q1", "q2", "q3"]
    assert lines["q1"].label == question_label("q1")
    assert lines["q1"].value == "Yes"
    assert lines["q2"].value == "-"
    assert lines["q12"].value == "Save staff time"


def test_unknown_answer_ids_fall_back_to_raw_id():
    record = LeadRecord.from_dict({**_record({}).to_dict(), "answers": {"legacy_field": "kept"}})
    view = assemble(record)
    assert [(line.label, line.value) for line in view.answers] == [("legacy_field", "kept")]


def test_render_pdf_produces_document():
    view = assemble(_record({f"q{i}": "yes" for i in range(1, 11)}))
    data = render_pdf(view, author="Clinic AI Readiness")
    assert data.startswith(b"%PDF")
    assert len(data) > 1024


def test_render_pdf_survives_non_latin_text():
    view = assemble(_record({"q15": "Clinic “North” — مرحبا \U0001F600"}))
    assert render_pdf(view).startswith(b"%PDF")


def test_sanitize_for_pdf_replaces_typography():
    assert sanitize_for_pdf("It’s “ready” – now…") == 'It\'s "ready" - now...'
    assert sanitize_for_pdf("你好") == "??"


def test_render_json_matches_view():
    view = assemble(_record({"q1": "yes"}))
    data = json.loads(render_json(view))
    assert data["record_id"] == RECORD_ID
    assert data["band"] == "Red"
    assert data["insights"] == list(view.insights)
    assert data["answers"][0] == {"question_id": "q1", "label": question_label("q1"), "value": "Yes"}


def test_email_text():
    view = assemble(_record({f"q{i}": "yes" for i in range(1, 11)}))
    assert email_subject(view) == "Your Clinic AI Readiness Report - Score 100% (Green)"
    body = email_body(view)
    assert body.startswith("Hi Dr. Sara,")
    assert "Score: 100% (Green - Ready now)" in body
    assert "Next step: Book a demo" in body
    assert pdf_filename(RECORD_ID) == f"clinic-ai-readiness-{RECORD_ID}.pdf"


def test_assemble_is_repeatable():
    record = _record({"q1": "yes", "q12": "Reduce no-shows"})
    assert assemble(record) == assemble(record)
    assert render_json(assemble(record)) == render_json(assemble(record))
