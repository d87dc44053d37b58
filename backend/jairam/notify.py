import logging
import os
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import Any, Callable

from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

EMAIL_OUTBOX: list[tuple[str, str, str]] = []
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

_PENDING_KEY = "pending_notifications"


def send_email(to_email: str, subject: str, message: str):
    if os.getenv("TESTING") == "1":
        EMAIL_OUTBOX.append((to_email, subject, message))
        return
    server = os.getenv("SMTP_SERVER")
    if not server:
        return
    from_addr = os.getenv("EMAIL_FROM", "noreply@jairam.org")
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_email
    msg.set_content(message)
    with smtplib.SMTP(server) as s:
        s.send_message(msg)


@dataclass(slots=True)
class Notification:
    kind: str
    recipient: str
    context: dict[str, Any] = field(default_factory=dict)


def _consent_request(ctx: dict[str, Any]) -> tuple[str, str]:
    subject = f"Co-Author Consent Request - {ctx['submission_title']}"
    body = (
        f"Dear {ctx['co_author_name']},\n\n"
        f"{ctx['author_name']} has listed you as a co-author on the manuscript "
        f"\"{ctx['submission_title']}\" submitted to JAIRAM.\n\n"
        f"Please confirm or decline your authorship here:\n{ctx['consent_link']}\n\n"
        f"This link expires on {ctx['expires_at']}."
    )
    return subject, body


def _invitation_sent(ctx: dict[str, Any]) -> tuple[str, str]:
    subject = f"Review Invitation - {ctx['submission_number']}"
    body = (
        f"Dear {ctx['reviewer_name']},\n\n"
        f"You have been suggested as a reviewer for the {ctx['article_type']} "
        f"\"{ctx['submission_title']}\" ({ctx['submission_number']}).\n\n"
        f"Respond to the invitation here:\n{ctx['invitation_link']}\n\n"
        f"This invitation expires on {ctx['expires_at']}."
    )
    return subject, body


def _decision_made(ctx: dict[str, Any]) -> tuple[str, str]:
    subject = f"Editorial Decision - {ctx['submission_number']}"
    body = (
        f"Dear {ctx['author_name']},\n\n"
        f"An editorial decision ({ctx['decision']}) has been recorded for "
        f"{ctx['submission_number']}. The submission status is now {ctx['new_status']}."
    )
    if ctx.get("remarks"):
        body += f"\n\nEditor remarks:\n{ctx['remarks']}"
    return subject, body


def _submission_confirmed(ctx: dict[str, Any]) -> tuple[str, str]:
    subject = f"Submission Confirmation - {ctx['submission_number']}"
    body = (
        f"Dear {ctx['author_name']},\n\n"
        f"Your manuscript \"{ctx['submission_title']}\" has been received and assigned "
        f"number {ctx['submission_number']}. We will keep you informed of its progress."
    )
    return subject, body


TEMPLATES: dict[str, Callable[[dict[str, Any]], tuple[str, str]]] = {
    "consent-request": _consent_request,
    "invitation-sent": _invitation_sent,
    "decision-made": _decision_made,
    "submission-confirmed": _submission_confirmed,
}


def render(kind: str, context: dict[str, Any]) -> tuple[str, str]:
    try:
        template = TEMPLATES[kind]
    except KeyError:
        raise ValueError(f"Unknown notification kind: {kind}")
    return template(context)


def send(kind: str, recipient: str, context: dict[str, Any]) -> None:
    subject, body = render(kind, context)
    send_email(recipient, subject, body)


def queue(db: Session, kind: str, recipient: str, context: dict[str, Any]) -> None:
    """Hold a notification until the session's transaction commits."""

    if kind not in TEMPLATES:
        raise ValueError(f"Unknown notification kind: {kind}")
    db.info.setdefault(_PENDING_KEY, []).append(Notification(kind, recipient, dict(context)))


def pending(db: Session) -> list[Notification]:
    return list(db.info.get(_PENDING_KEY, []))


def dispatch_pending(db: Session) -> int:
    notifications = db.info.pop(_PENDING_KEY, [])
    sent = 0
    for item in notifications:
        try:
            send(item.kind, item.recipient, item.context)
            sent += 1
        except Exception:
            logger.exception("Failed to send %s notification to %s", item.kind, item.recipient)
    return sent


@event.listens_for(Session, "after_commit")
def _send_after_commit(session: Session) -> None:
    dispatch_pending(session)


@event.listens_for(Session, "after_rollback")
def _discard_after_rollback(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)
