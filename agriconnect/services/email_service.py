import smtplib
from email.message import EmailMessage
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from agriconnect.config import settings


def _build_frontend_link(path: str, token: str) -> str:
    base = f"{settings.FRONTEND_URL.rstrip('/')}/{path.lstrip('/')}"
    parsed = urlparse(base)
    query = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query["token"] = token
    return urlunparse(parsed._replace(query=urlencode(query)))


def _send_email(
    to_email: str,
    subject: str,
    text_body: str,
    html_body: str | None = None,
    reply_to: str | None = None,
) -> None:
    if not settings.SMTP_HOST or not settings.SMTP_FROM_EMAIL:
        raise RuntimeError("SMTP is not configured (SMTP_HOST and SMTP_FROM_EMAIL are required).")

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
    message["To"] = to_email
    if reply_to:
        message["Reply-To"] = reply_to
    message.set_content(text_body)
    if html_body:
        message.add_alternative(html_body, subtype="html")

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as smtp:
        smtp.ehlo()
        if settings.SMTP_USE_TLS:
            smtp.starttls()
            smtp.ehlo()
        if settings.SMTP_USER:
            smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        smtp.send_message(message)


def send_password_reset_email(to_email: str, name: str | None, token: str) -> None:
    link = _build_frontend_link(settings.PASSWORD_RESET_PATH, token)
    name = name or "there"
    text = (
        f"Hi {name},\n\n"
        "You requested a password reset for your AgriConnect account. "
        "Open this link to set a new password:\n"
        f"{link}\n\n"
        "If you did not request this, ignore this message."
    )
    html = (
        f"<p>Hi {name},</p>"
        "<p>You requested a password reset for your AgriConnect account. "
        "Click the link below to set a new password:</p>"
        f"<p><a href=\"{link}\">Reset password</a></p>"
        "<p>If you did not request this, ignore this message.</p>"
    )
    _send_email(to_email=to_email, subject="Reset your AgriConnect password", text_body=text, html_body=html)


def send_contact_message(name: str, email: str, subject: str, message: str) -> None:
    text = (
        f"New contact form submission from {name} <{email}>\n\n"
        f"Subject: {subject}\n\n"
        f"{message}"
    )
    _send_email(
        to_email=settings.CONTACT_INBOX_EMAIL,
        subject=f"[Contact] {subject}",
        text_body=text,
        reply_to=email,
    )


def send_newsletter_welcome(to_email: str) -> None:
    text = (
        "Thank you for subscribing to the AgriConnect Rwanda newsletter.\n\n"
        "You will receive market updates, seasonal produce news and platform announcements."
    )
    _send_email(to_email=to_email, subject="Welcome to AgriConnect Rwanda", text_body=text)
