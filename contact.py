"""
Contact relay.

Receives the portfolio's contact form and forwards it as two emails through
Resend: a notification to the site owner and an acknowledgment to the sender.
Nothing is stored or retried. The main API includes `router`; `relay` serves
the same endpoint on its own.
"""

import html
import logging
import os
from datetime import datetime
from typing import Iterator, Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response

from errors import RelayError
from schemas import ContactRequest

logger = logging.getLogger(__name__)

RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
CONTACT_OWNER_EMAIL = os.getenv("CONTACT_OWNER_EMAIL", "owner@portfolio.dev")
CONTACT_FROM_ADDRESS = os.getenv("CONTACT_FROM_ADDRESS", "onboarding@resend.dev")
CONTACT_SENDER_NAME = os.getenv("CONTACT_SENDER_NAME", "Portfolio Owner")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}

RELAY_PATH = "/functions/send-contact-email"
REQUIRED_FIELDS = ("name", "email", "subject", "message")


class ResendMailer:
    def __init__(self, api_key: str = RESEND_API_KEY, client: Optional[httpx.Client] = None):
        self.api_key = api_key
        self.client = client or httpx.Client(timeout=10.0)

    def __enter__(self) -> "ResendMailer":
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self.client.close()

    def send(self, sender: str, to: str, subject: str, body: str) -> str:
        try:
            response = self.client.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"from": sender, "to": [to], "subject": subject, "html": body},
            )
            response.raise_for_status()
            return response.json().get("id", "")
        except (httpx.HTTPError, ValueError) as exc:
            raise RelayError(f"Email provider rejected message to {to}: {exc}")


def owner_notification(contact: ContactRequest, sent_at: datetime) -> str:
    message = html.escape(contact.message).replace("\n", "<br>")
    return (
        "<h2>New Contact Form Submission</h2>"
        f"<p><strong>Name:</strong> {html.escape(contact.name)}</p>"
        f"<p><strong>Email:</strong> {html.escape(contact.email)}</p>"
        f"<p><strong>Subject:</strong> {html.escape(contact.subject)}</p>"
        f"<h3>Message</h3><p>{message}</p>"
        f"<p>Sent from your portfolio contact form at {sent_at:%Y-%m-%d %H:%M UTC}</p>"
    )


def sender_acknowledgment(contact: ContactRequest, sent_at: datetime) -> str:
    return (
        "<h2>Thank you for your message!</h2>"
        f"<p>Hi {html.escape(contact.name)},</p>"
        "<p>Thank you for reaching out through my portfolio. I've received your message about "
        f"\"<strong>{html.escape(contact.subject)}</strong>\" and will get back to you as soon as possible.</p>"
        f"<blockquote>{html.escape(contact.message)}</blockquote>"
        "<p>I typically respond within 24-48 hours.</p>"
        f"<p>{html.escape(CONTACT_SENDER_NAME)}<br>{html.escape(CONTACT_OWNER_EMAIL)}</p>"
        f"<p>Sent on {sent_at:%Y-%m-%d %H:%M UTC}</p>"
    )


def relay_contact(contact: ContactRequest, mailer: ResendMailer) -> None:
    sent_at = datetime.utcnow()
    mailer.send(
        f"Portfolio Contact <{CONTACT_FROM_ADDRESS}>",
        CONTACT_OWNER_EMAIL,
        f"Portfolio Contact: {contact.subject}",
        owner_notification(contact, sent_at),
    )
    mailer.send(
        f"{CONTACT_SENDER_NAME} <{CONTACT_FROM_ADDRESS}>",
        contact.email,
        "Thanks for reaching out!",
        sender_acknowledgment(contact, sent_at),
    )


def get_mailer() -> Iterator[ResendMailer]:
    with ResendMailer() as mailer:
        yield mailer


router = APIRouter(prefix=RELAY_PATH)


def _json(status_code: int, body: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body, headers=CORS_HEADERS)


@router.options("")
def preflight():
    return Response(status_code=200, headers=CORS_HEADERS)


@router.post("")
async def send_contact_email(request: Request, mailer: ResendMailer = Depends(get_mailer)):
    try:
        payload = await request.json()
    except ValueError:
        return _json(400, {"error": "Invalid JSON body"})
    if not isinstance(payload, dict) or not all(
        isinstance(payload.get(name), str) and payload[name].strip() for name in REQUIRED_FIELDS
    ):
        return _json(400, {"error": "All fields are required"})

    contact = ContactRequest(**{name: payload[name] for name in REQUIRED_FIELDS})
    try:
        await run_in_threadpool(relay_contact, contact, mailer)
    except RelayError as exc:
        logger.error("Error in send-contact-email: %s", exc.message)
        return _json(500, {"error": "Failed to send message. Please try again later."})

    logger.info("Contact emails sent for %s", contact.email)
    return _json(200, {"success": True, "message": "Message sent successfully! I'll get back to you soon."})


# Standalone deployment of the same endpoint.
relay = FastAPI(title="Contact Relay")
relay.include_router(router)
