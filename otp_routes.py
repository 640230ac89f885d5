# -*- coding: utf-8 -*-
"""
Created on Tue Mar 10 09:14:55 2026

@author: Vineet
"""

# otp_routes.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from otp import (
    OtpStore, OtpError, check_email, format_phone, is_valid_phone,
)
from notify import send_email, send_sms, DeliveryError

log = logging.getLogger("otp")
router = APIRouter(prefix="/api/otp", tags=["otp"])


def get_otp_store(request: Request) -> OtpStore:
    return request.app.state.otp_store


class EmailOtpIn(BaseModel):
    email: str


class SmsOtpIn(BaseModel):
    phoneNumber: str


class VerifyOtpIn(BaseModel):
    contact: str
    otp: str = Field(min_length=1)


def _minutes(store: OtpStore) -> int:
    return max(1, store.ttl_seconds // 60)


@router.post("/send-email-otp")
def send_email_otp(body: EmailOtpIn, store: OtpStore = Depends(get_otp_store)):
    email = body.email.strip().lower()
    problem = check_email(email)
    if problem:
        raise HTTPException(status_code=400, detail=problem)

    code = store.issue(email)
    text = (
        f"Your one-time password (OTP) for login is: {code}\n\n"
        f"This OTP will expire in {_minutes(store)} minutes.\n"
        "If you didn't request this OTP, please ignore this email."
    )
    try:
        sent = send_email(email, "Your OTP for Login - YourTube", text)
    except DeliveryError as e:
        log.error("Email OTP delivery to %s failed: %s", email, e)
        raise HTTPException(status_code=502, detail="Failed to send OTP")

    if not sent:
        log.info("EMAIL OTP (mock mode) %s -> %s", email, code)
        return {"success": True, "message": "OTP generated (email delivery not configured)"}
    return {"success": True, "message": "OTP sent to your email. Check your inbox!"}


@router.post("/send-sms-otp")
def send_sms_otp(body: SmsOtpIn, store: OtpStore = Depends(get_otp_store)):
    raw = body.phoneNumber.strip()
    if not raw:
        raise HTTPException(status_code=400, detail="Phone number is required")
    formatted = format_phone(raw)
    if not is_valid_phone(formatted):
        raise HTTPException(
            status_code=400,
            detail="Invalid phone number format. Use: 9876543210 or +919876543210",
        )

    code = store.issue(raw)
    try:
        sent = send_sms(formatted, f"Your YourTube OTP is: {code}. Valid for {_minutes(store)} minutes.")
    except DeliveryError as e:
        log.error("SMS OTP delivery to %s failed: %s", formatted, e)
        raise HTTPException(status_code=502, detail="Failed to send OTP")

    if not sent:
        log.info("SMS OTP (mock mode) %s -> %s", formatted, code)
        return {"success": True, "message": "OTP generated (SMS delivery not configured)", "formattedPhone": formatted}
    return {"success": True, "message": "OTP sent to your mobile number", "formattedPhone": formatted}


@router.post("/verify-otp")
def verify_otp(body: VerifyOtpIn, store: OtpStore = Depends(get_otp_store)):
    contact = body.contact.strip()
    if not contact:
        raise HTTPException(status_code=400, detail="Contact (email or phone) is required")
    try:
        store.verify(contact, body.otp)
    except OtpError as e:
        log.info("OTP verification failed for %s: %s", contact, type(e).__name__)
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "message": "OTP verified successfully"}
