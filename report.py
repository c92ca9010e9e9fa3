from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from io import BytesIO
from typing import Dict, List, Optional, Tuple

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from catalog import answer_display, ordered_answer_ids, question_label
from funnel import LeadRecord
from insights import top_insights
from scoring import Band

REPORT_TITLE = "Clinic AI Readiness Report"
PDF_FONT_FAMILY = "Helvetica"

NEXT_STEPS: Dict[Band, str] = {
    Band.GREEN: "Book a product demo to review advanced automations and analytics.",
    Band.AMBER: "Start a 4-week pilot focusing on reminders and online booking.",
    Band.RED: "Start with automated reminders and a simple online booking page (fastest ROI).",
}

EMAIL_NEXT_STEPS: Dict[Band, str] = {
    Band.GREEN: "Book a demo",
    Band.AMBER: "Download the guide and consider a quick pilot.",
    Band.RED: "Download the guide and consider a quick pilot.",
}


@dataclass(frozen=True)
class AnswerLine:
    question_id: str
    label: str
    value: str


@dataclass(frozen=True)
class ReportView:
    title: str
    record_id: str
    name: str
    email: str
    location: str
    created_at: str
    percentage: int
    raw_points: float
    band: Band
    band_label: str
    score_line: str
    top_insights: Tuple[str, ...]
    insights: Tuple[str, ...]
    answers: Tuple[AnswerLine, ...]
    next_step: str

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["band"] = self.band.value
        data["answers"] = [asdict(line) for line in self.answers]
        data["top_insights"] = list(self.top_insights)
        data["insights"] = list(self.insights)
        return data


def format_score_line(percentage: int, band: Band) -> str:
    return f"Score: {percentage}% ({band.value} - {band.label})"


def assemble(record: LeadRecord, title: str = REPORT_TITLE) -> ReportView:
    result = record.score
    answers = tuple(
        AnswerLine(
            question_id=question_id,
            label=question_label(question_id),
            value=answer_display(question_id, record.answers.get(question_id)),
        )
        for question_id in ordered_answer_ids(record.answers)
    )
    return ReportView(
        title=title,
        record_id=record.id,
        name=record.name,
        email=record.email,
        location=record.location,
        created_at=record.created_at,
        percentage=result.percentage,
        raw_points=result.raw_points,
        band=result.band,
        band_label=result.band.label,
        score_line=format_score_line(result.percentage, result.band),
        top_insights=tuple(top_insights(record.insights)),
        insights=tuple(record.insights),
        answers=answers,
        next_step=NEXT_STEPS[result.band],
    )


def sanitize_for_pdf(text: str) -> str:
    replacements = {
        "’": "'",
        "‘": "'",
        "“": '"',
        "”": '"',
        "–": "-",
        "—": "-",
        "…": "...",
        "✔": "-",
        "•": "-",
    }
    for src, dest in replacements.items():
        text = text.replace(src, dest)
    # Core PDF fonts only cover latin-1.
    return text.encode("latin-1", "replace").decode("latin-1")


def _heading(pdf: FPDF, text: str) -> None:
    pdf.ln(3)
    pdf.set_font(PDF_FONT_FAMILY, "B", 13)
    pdf.set_fill_color(244, 245, 251)
    pdf.cell(0, 9, sanitize_for_pdf(text), fill=True, new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(2)


def _paragraph(pdf: FPDF, text: str, size: int = 11, height: float = 6) -> None:
    pdf.set_font(PDF_FONT_FAMILY, "", size)
    pdf.multi_cell(0, height, sanitize_for_pdf(text), align="L", new_x=XPos.LMARGIN, new_y=YPos.NEXT)


def render_pdf(view: ReportView, author: Optional[str] = None) -> bytes:
    pdf = FPDF(format="A4")
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.set_margins(15, 15, 15)
    pdf.add_page()

    base_text_color = (32, 37, 45)
    muted_color = (110, 116, 132)

    pdf.set_title(sanitize_for_pdf(view.title))
    if author:
        pdf.set_author(sanitize_for_pdf(author))
    pdf.set_text_color(*base_text_color)

    pdf.set_font(PDF_FONT_FAMILY, "B", 18)
    pdf.cell(0, 12, sanitize_for_pdf(view.title), align="C", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(4)

    pdf.set_text_color(*muted_color)
    _paragraph(pdf, f"Report ID: {view.record_id}", size=10)
    pdf.set_text_color(*base_text_color)
    _paragraph(pdf, f"Name: {view.name}")
    _paragraph(pdf, f"Email: {view.email}")
    if view.location:
        _paragraph(pdf, f"Location: {view.location}")
    pdf.ln(4)

    pdf.set_font(PDF_FONT_FAMILY, "B", 14)
    pdf.set_text_color(*view.band.color)
    pdf.cell(0, 9, sanitize_for_pdf(view.score_line), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.set_text_color(*base_text_color)

    _heading(pdf, "Top Insights")
    for index, insight in enumerate(view.insights, start=1):
        _paragraph(pdf, f"{index}. {insight}")
        pdf.ln(1)

    _heading(pdf, "Answers Summary")
    for line in view.answers:
        pdf.set_font(PDF_FONT_FAMILY, "B", 10)
        pdf.multi_cell(0, 5, sanitize_for_pdf(line.label), align="L", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        _paragraph(pdf, line.value, size=10, height=5)
        pdf.ln(1)

    _heading(pdf, "Recommended Next Steps")
    _paragraph(pdf, f"- {view.next_step}")

    buffer = BytesIO()
    pdf.output(buffer)
    return buffer.getvalue()


def render_json(view: ReportView) -> bytes:
    return json.dumps(view.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")


def pdf_filename(record_id: str) -> str:
    return f"clinic-ai-readiness-{record_id}.pdf"


def json_filename(record_id: str) -> str:
    return f"clinic-ai-readiness-{record_id}.json"


def email_subject(view: ReportView) -> str:
    return f"Your Clinic AI Readiness Report - Score {view.percentage}% ({view.band.value})"


def email_body(view: ReportView, signature: str = "Clinic AI Team") -> str:
    lines: List[str] = [
        f"Hi {view.name}," if view.name else "Hi,",
        "",
        "Attached is your Clinic AI Readiness Report.",
        "",
        view.score_line,
        "",
        "Top insights:",
    ]
    lines.extend(f"{index}. {insight}" for index, insight in enumerate(view.top_insights, start=1))
    lines.extend(
        [
            "",
            f"Next step: {EMAIL_NEXT_STEPS[view.band]}",
            "",
            "Thanks,",
            signature,
        ]
    )
    return "\n".join(lines)
