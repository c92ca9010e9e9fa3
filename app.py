from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from typing import Dict, List, Set, Tuple

from flask import Flask, flash, redirect, render_template, request, send_file, session, url_for

from catalog import QUESTIONS, QuestionKind
from enrichment import build_enricher
from funnel import (
    Answer,
    Begin,
    DeliverReport,
    Effect,
    Finish,
    FunnelSession,
    InvalidTransition,
    LeadRecord,
    NotifyWebhook,
    PersistRecord,
    Restart,
    Stage,
    SubmitLead,
    Transition,
    rebuild_record,
    step,
)
from insights import InsightGenerator
from mailer import Attachment, DeliveryOutcome, DeliveryStatus, SMTPMailer
from report import ReportView, assemble, email_body, email_subject, json_filename, pdf_filename, render_json, render_pdf
from settings import Settings, load_settings
from storage import JsonFileStore, PersistenceError, RecordNotFound
from webhook import WebhookNotifier

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

SETTINGS = load_settings()

app = Flask(__name__)
app.config["SECRET_KEY"] = SETTINGS.secret_key
app.config["BRAND_NAME"] = SETTINGS.brand_name
app.config["REQUIRE_LOCATION"] = SETTINGS.require_location
app.config["CALENDLY_URL"] = SETTINGS.calendly_url

SESSION_KEY = "funnel"
CONSENT_TEXT = (
    "By continuing, you agree to receive your results and occasional updates. "
    "You can unsubscribe anytime."
)

STAGE_ENDPOINTS: Dict[Stage, str] = {
    Stage.LANDING: "landing",
    Stage.LEAD_CAPTURE: "lead",
    Stage.QUIZ: "quiz",
    Stage.RESULTS: "results",
}


@dataclass
class Collaborators:
    store: object
    mailer: SMTPMailer
    webhook: WebhookNotifier
    insight_generator: InsightGenerator
    # Record ids whose effects already ran in this process.
    handled: Set[str] = field(default_factory=set)


def build_collaborators(settings: Settings) -> Collaborators:
    return Collaborators(
        store=JsonFileStore(settings.leads_dir),
        mailer=SMTPMailer(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_email=settings.from_email,
        ),
        webhook=WebhookNotifier(settings.webhook_url, timeout=settings.webhook_timeout),
        insight_generator=InsightGenerator(
            build_enricher(settings.openai_api_key, settings.openai_model),
            timeout=settings.enrichment_timeout,
        ),
    )


app.extensions["funnel"] = build_collaborators(SETTINGS)


def get_collaborators() -> Collaborators:
    return app.extensions["funnel"]


def load_funnel() -> FunnelSession:
    return FunnelSession.from_dict(session.get(SESSION_KEY))


def save_funnel(funnel: FunnelSession) -> None:
    session[SESSION_KEY] = funnel.to_dict()


def deliver_report(record: LeadRecord, mailer: SMTPMailer) -> DeliveryOutcome:
    if not mailer.is_configured():
        logger.info("Email transport not configured; report %s not sent", record.id)
        return DeliveryOutcome(DeliveryStatus.NOT_CONFIGURED, "SMTP not configured")
    view = build_report_view(record)
    try:
        pdf_bytes = render_pdf(view, author=app.config["BRAND_NAME"])
    except Exception as exc:
        logger.exception("Could not render report %s", record.id)
        return DeliveryOutcome(DeliveryStatus.FAILED, f"Report rendering failed: {exc}")
    return mailer.send(
        record.email,
        email_subject(view),
        email_body(view, signature=f"{app.config['BRAND_NAME']} Team"),
        Attachment(pdf_filename(record.id), pdf_bytes),
    )


def run_effects(effects: Tuple[Effect, ...], collaborators: Collaborators) -> List[str]:
    """Execute side effects independently; returns user-facing warnings."""
    warnings: List[str] = []
    persisted = set()
    for effect in effects:
        if isinstance(effect, PersistRecord):
            if effect.record.id in collaborators.handled or effect.record.id in collaborators.store:
                logger.info("Lead %s already submitted; skipping duplicate side effects", effect.record.id)
                break
            collaborators.handled.add(effect.record.id)
            try:
                collaborators.store.put(effect.record.id, effect.record.to_dict())
                persisted.add(effect.record.id)
            except PersistenceError as exc:
                logger.error("Persisting lead %s failed: %s", effect.record.id, exc)
                warnings.append(
                    "We couldn't save your report. Download it now, the link will not work later."
                )
        elif isinstance(effect, DeliverReport):
            outcome = deliver_report(effect.record, collaborators.mailer)
            if outcome.status is DeliveryStatus.FAILED:
                logger.warning("Report %s not delivered: %s", effect.record.id, outcome.reason)
                warnings.append("We couldn't email your report, but you can download it below.")
            if effect.record.id in persisted:
                try:
                    collaborators.store.put(effect.record.id, effect.record.with_delivery(outcome).to_dict())
                except PersistenceError as exc:
                    logger.error("Saving delivery outcome for %s failed: %s", effect.record.id, exc)
        elif isinstance(effect, NotifyWebhook):
            collaborators.webhook.notify(effect.kind, effect.payload)
    return warnings


def dispatch(action) -> Transition:
    collaborators = get_collaborators()
    transition = step(
        load_funnel(),
        action,
        insight_generator=collaborators.insight_generator,
        require_location=app.config["REQUIRE_LOCATION"],
    )
    for warning in run_effects(transition.effects, collaborators):
        flash(warning, "warning")
    save_funnel(transition.session)
    return transition


def redirect_to_stage(funnel: FunnelSession):
    return redirect(url_for(STAGE_ENDPOINTS[funnel.stage]))


def load_record(record_id: str) -> LeadRecord:
    """Stored record first; otherwise this browser's own submission rebuilt from its answers."""
    try:
        return LeadRecord.from_dict(get_collaborators().store.get(record_id))
    except (RecordNotFound, PersistenceError, KeyError, TypeError, ValueError, AttributeError) as exc:
        funnel = load_funnel()
        if funnel.record_id == record_id:
            record = rebuild_record(funnel)
            if record is not None:
                return record
        if not isinstance(exc, RecordNotFound):
            logger.error("Reading lead %s failed: %r", record_id, exc)
        raise RecordNotFound(record_id) from None


def build_report_view(record: LeadRecord) -> ReportView:
    return assemble(record, title=f"{app.config['BRAND_NAME']} Report")


@app.errorhandler(InvalidTransition)
def handle_invalid_transition(error: InvalidTransition):
    logger.info("Ignoring out-of-order action: %s", error)
    return redirect_to_stage(load_funnel())


@app.errorhandler(RecordNotFound)
def handle_missing_record(error: RecordNotFound):
    return render_template("not_found.html", record_id=error.record_id), 404


@app.context_processor
def inject_brand():
    return {
        "brand_name": app.config["BRAND_NAME"],
        "consent_text": CONSENT_TEXT,
        "year": datetime.now().year,
    }


@app.get("/")
def landing():
    return render_template("landing.html")


@app.post("/start")
def start():
    funnel = dispatch(Begin()).session
    return redirect_to_stage(funnel)


@app.route("/lead", methods=["GET", "POST"])
def lead():
    funnel = load_funnel()
    if funnel.stage is not Stage.LEAD_CAPTURE:
        return redirect_to_stage(funnel)

    if request.method == "POST":
        action = SubmitLead(
            name=request.form.get("name", ""),
            email=request.form.get("email", ""),
            location=request.form.get("location", ""),
            consent=request.form.get("consent") in ("on", "true", "1", "yes"),
        )
        funnel = dispatch(action).session
        if funnel.stage is not Stage.LEAD_CAPTURE:
            return redirect_to_stage(funnel)

    return render_template(
        "lead.html",
        funnel=funnel,
        error=funnel.error,
        require_location=app.config["REQUIRE_LOCATION"],
    )


@app.route("/quiz", methods=["GET", "POST"])
def quiz():
    funnel = load_funnel()
    if funnel.stage is not Stage.QUIZ:
        return redirect_to_stage(funnel)

    if request.method == "POST":
        form_values = request.form.to_dict()
        if form_values.get("action") == "save":
            funnel = dispatch(Answer(form_values)).session
        else:
            funnel = dispatch(Finish(form_values)).session
        return redirect_to_stage(funnel)

    return render_template(
        "quiz.html",
        questions=QUESTIONS,
        kinds=QuestionKind,
        submitted=funnel.answers,
    )


@app.get("/results")
def results():
    funnel = load_funnel()
    if funnel.stage is not Stage.RESULTS or not funnel.record_id:
        return redirect_to_stage(funnel)

    record = load_record(funnel.record_id)
    view = build_report_view(record)
    return render_template(
        "results.html",
        view=view,
        delivery=record.delivery,
        calendly_url=app.config["CALENDLY_URL"],
    )


@app.post("/restart")
def restart():
    funnel = dispatch(Restart()).session
    return redirect_to_stage(funnel)


@app.get("/report/<record_id>.pdf")
def download_pdf(record_id: str):
    view = build_report_view(load_record(record_id))
    pdf_bytes = render_pdf(view, author=app.config["BRAND_NAME"])
    return send_file(
        BytesIO(pdf_bytes),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=pdf_filename(view.record_id),
    )


@app.get("/report/<record_id>.json")
def download_json(record_id: str):
    view = build_report_view(load_record(record_id))
    return send_file(
        BytesIO(render_json(view)),
        mimetype="application/json",
        as_attachment=True,
        download_name=json_filename(view.record_id),
    )


@app.get("/health")
def health_check():
    return {"status": "ok"}


if __name__ == "__main__":
    app.run(debug=True, port=5001)
