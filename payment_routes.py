# -*- coding: utf-8 -*-
"""
Created on Tue Mar 10 11:20:14 2026

@author: Vineet
"""

# payment_routes.py
from __future__ import annotations
import os, json, hmac, hashlib, logging, time
from datetime import datetime
from typing import Dict, Any, Optional

import razorpay
from razorpay.errors import BadRequestError, ServerError, SignatureVerificationError
from fastapi import APIRouter, HTTPException, Request, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from db import get_db, User, Transaction
from auth import get_current_user
from tiers import Tier, UnknownPlanError
import subscriptions
from notify import send_email, DeliveryError

log = logging.getLogger("payments")
router = APIRouter(prefix="/api/payments", tags=["payments"])

# ------------------------- Environment / Config ------------------------------

MODE = "razorpay"

RZP_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "").strip()
RZP_SECRET = os.getenv("RAZORPAY_SECRET", "").strip()
RZP_WEBHOOK_SECRET = os.getenv("RAZORPAY_WEBHOOK_SECRET", "").strip()

CURRENCY = "INR"

_rzp: Optional[razorpay.Client] = None
if RZP_KEY_ID and RZP_SECRET:
    _rzp = razorpay.Client(auth=(RZP_KEY_ID, RZP_SECRET))
else:
    log.warning("Razorpay client not initialized (missing keys).")


class GatewayError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status


# ------------------------- Gateway helpers ----------------------------------

def _gateway_ready() -> bool:
    return _rzp is not None


def create_gateway_order(amount_major: int, receipt: str, notes: Dict[str, Any]) -> Dict[str, Any]:
    """Razorpay order for one plan purchase; amount goes out in paise."""
    if not _rzp:
        raise GatewayError(503, "Payment gateway not configured on server.")
    try:
        return _rzp.order.create({
            "amount": amount_major * 100,
            "currency": CURRENCY,
            "receipt": receipt,
            "notes": notes,
        })
    except BadRequestError as e:
        msg = getattr(e, "args", [str(e)])[0]
        raise GatewayError(400, f"Order create failed: {msg}") from e
    except ServerError as e:
        msg = getattr(e, "args", [str(e)])[0]
        raise GatewayError(502, f"Razorpay server error: {msg}") from e


def verify_payment_signature(order_id: str, payment_id: str, signature: str,
                             client: Optional[razorpay.Client] = None) -> bool:
    client = client or _rzp
    if client is None:
        return False
    try:
        client.utility.verify_payment_signature({
            "razorpay_order_id": order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": signature or "",
        })
    except SignatureVerificationError:
        return False
    return True


def verify_webhook_signature(body: bytes, signature: str, secret: Optional[str] = None) -> bool:
    # Razorpay: HMAC-SHA256 hex digest over raw body
    secret = RZP_WEBHOOK_SECRET if secret is None else secret
    if not secret:
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature or "")


def _complete(db: Session, txn: Transaction, payment_id: str) -> Dict[str, Any]:
    """Mark a transaction paid and switch the user's plan. Idempotent per order."""
    user = db.get(User, txn.user_id)
    if user is None:
        raise HTTPException(404, "User not found")
    if txn.status == "SUCCESS":
        return {"subscription": subscriptions.latest(db, user.id), "user": user, "fresh": False}

    txn.payment_id = payment_id
    txn.status = "SUCCESS"
    txn.invoice_number = f"INV-{int(time.time() * 1000)}"
    sub = subscriptions.activate(db, user, txn.plan, order_id=txn.order_id, payment_id=payment_id)
    try:
        db.commit()
    except Exception:
        db.rollback()
        log.exception("Activating order %s failed", txn.order_id)
        raise HTTPException(500, "DB update failed")
    db.refresh(sub)
    return {"subscription": sub, "user": user, "fresh": True}


def _send_invoice(user: User, txn: Transaction) -> None:
    body = (
        f"Hi {user.name or user.email},\n\n"
        f"Thanks for subscribing to the {txn.plan.label} plan.\n\n"
        f"Invoice: {txn.invoice_number}\n"
        f"Date: {datetime.utcnow():%Y-%m-%d}\n"
        f"Amount: {txn.amount} {txn.currency}\n"
        f"Order: {txn.order_id}\n"
        f"Payment: {txn.payment_id}\n"
    )
    try:
        send_email(user.email, f"Your YourTube invoice {txn.invoice_number}", body)
    except DeliveryError as e:
        log.warning("Invoice email for order %s failed: %s", txn.order_id, e)

# ------------------------- Routes -------------------------------------------

@router.get("/ping")
def ping():
    return {"ok": True, "mode": MODE, "configured": _gateway_ready(), "currency": CURRENCY}


class CreateOrderBody(BaseModel):
    plan: str


@router.post("/create-order", status_code=201)
def create_order(
    body: CreateOrderBody,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        tier = Tier.parse(body.plan)
    except UnknownPlanError:
        raise HTTPException(400, "Invalid plan selected")
    if tier is Tier.FREE or not tier.caps.purchasable:
        raise HTTPException(400, "Invalid plan selected")
    if current_user.current_plan == tier:
        raise HTTPException(400, "You are already subscribed to this plan.")

    amount = tier.caps.price
    receipt = f"rcpt_{current_user.id}_{int(time.time())}"
    try:
        order = create_gateway_order(amount, receipt, {"userId": str(current_user.id), "plan": tier.label})
    except GatewayError as e:
        log.error("Order create failed for user %s: %s", current_user.id, e)
        raise HTTPException(e.status, str(e)) from e

    db.add(Transaction(
        user_id=current_user.id,
        order_id=order["id"],
        amount=amount,
        currency=CURRENCY,
        plan=tier,
        status="PENDING",
    ))
    db.commit()
    return {
        "orderId": order["id"],
        "amount": order.get("amount", amount * 100),
        "currency": order.get("currency", CURRENCY),
        "keyId": RZP_KEY_ID or None,
        "plan": tier.label,
    }


class VerifyBody(BaseModel):
    orderId: str
    paymentId: str
    signature: str


@router.post("/verify")
def verify_payment(
    body: VerifyBody,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not _rzp:
        raise HTTPException(503, "Payment gateway not configured on server.")
    if not verify_payment_signature(body.orderId, body.paymentId, body.signature):
        raise HTTPException(400, "Invalid payment signature")

    txn = (
        db.query(Transaction)
        .filter(Transaction.order_id == body.orderId, Transaction.user_id == current_user.id)
        .first()
    )
    if not txn:
        raise HTTPException(404, "Transaction not found")

    done = _complete(db, txn, body.paymentId)
    if done["fresh"]:
        _send_invoice(done["user"], txn)

    sub = done["subscription"]
    return {
        "message": "Subscription activated successfully",
        "subscription": subscriptions.serialize(sub) if sub else None,
        "invoiceNumber": txn.invoice_number,
    }

# -------------------------- Webhook (authoritative) --------------------------

@router.post("/razorpay/webhook")
async def razorpay_webhook(request: Request, db: Session = Depends(get_db)):
    """
    payment.captured / order.paid => activate the plan bought with that order
    payment.failed                => mark the transaction FAILED
    """
    if not RZP_WEBHOOK_SECRET:
        raise HTTPException(503, "Webhook secret not configured")

    body = await request.body()
    if not verify_webhook_signature(body, request.headers.get("X-Razorpay-Signature", "")):
        raise HTTPException(401, "Invalid signature")

    try:
        event = json.loads(body.decode("utf-8"))
    except ValueError:
        raise HTTPException(400, "Malformed payload")
    etype = event.get("event", "")
    payload = event.get("payload", {}) or {}

    payment = (payload.get("payment") or {}).get("entity") or {}
    order = (payload.get("order") or {}).get("entity") or {}
    order_id = payment.get("order_id") or order.get("id")
    if not order_id:
        log.warning("Webhook %s without order id; payload keys=%s", etype, list(payload.keys()))
        return {"ok": True, "note": "no-order-in-payload"}

    txn = db.query(Transaction).filter(Transaction.order_id == order_id).first()
    if not txn:
        log.warning("Webhook %s: no transaction for order %s", etype, order_id)
        return {"ok": True, "note": "order-not-found"}

    if etype in ("payment.captured", "order.paid"):
        done = _complete(db, txn, payment.get("id") or txn.payment_id or "")
        if done["fresh"]:
            _send_invoice(done["user"], txn)
    elif etype == "payment.failed":
        if txn.status == "PENDING":
            txn.status = "FAILED"
            db.commit()
    else:
        return {"ok": True, "note": f"ignored:{etype}"}

    return {"ok": True, "orderId": order_id, "event": etype}
