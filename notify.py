# -*- coding: utf-8 -*-
# notify.py
import os, smtplib, ssl, logging
from email.message import EmailMessage

import requests

log = logging.getLogger("notify")

SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASS = os.getenv("SMTP_PASS", "")
MAIL_FROM_NAME = os.getenv("MAIL_FROM_NAME", "YourTube")

TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID", "")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN", "")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER", "")
TWILIO_API = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
SMS_TIMEOUT = float(os.getenv("SMS_TIMEOUT", "10"))


class DeliveryError(Exception):
    pass


def email_configured() -> bool:
    return bool(SMTP_HOST and SMTP_USER and SMTP_PASS)


def sms_configured() -> bool:
    return bool(TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_PHONE_NUMBER)


def send_email(to: str, subject: str, body: str) -> bool:
    """False when SMTP is not configured (nothing sent); raises DeliveryError on failure."""
    if not email_configured():
        log.warning("SMTP not configured; email to %s not sent (%s)", to, subject)
        return False
    msg = EmailMessage()
    msg["From"] = f"{MAIL_FROM_NAME} <{SMTP_USER}>"
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body)
    try:
        ctx = ssl.create_default_context()
        with smtplib.SMTP(SMTP_HOST, SMTP_PORT) as s:
            s.starttls(context=ctx)
            s.login(SMTP_USER, SMTP_PASS)
            s.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        raise DeliveryError(f"Email send failed: {e!s}") from e
    return True


def send_sms(to: str, body: str) -> bool:
    """False when Twilio is not configured; raises DeliveryError on failure."""
    if not sms_configured():
        log.warning("Twilio not configured; SMS to %s not sent", to)
        return False
    try:
        resp = requests.post(
            TWILIO_API.format(sid=TWILIO_ACCOUNT_SID),
            data={"From": TWILIO_PHONE_NUMBER, "To": to, "Body": body},
            auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN),
            timeout=SMS_TIMEOUT,
        )
    except requests.RequestException as e:
        raise DeliveryError(f"SMS send failed: {e!s}") from e
    if resp.status_code >= 400:
        try:
            detail = resp.json().get("message") or resp.text
        except ValueError:
            detail = resp.text
        raise DeliveryError(f"SMS provider rejected message ({resp.status_code}): {detail}")
    return True
