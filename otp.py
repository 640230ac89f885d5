# otp.py
"""
One-time passcodes for email / SMS login.

Entries carry their own expiry and are checked on read, so an expired code is
rejected whether or not sweep() has run yet. sweep() only reclaims memory; the
scheduler calls it every minute.
"""
import re
import time
import secrets
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

log = logging.getLogger("otp")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
E164_RE = re.compile(r"^\+[1-9]\d{1,14}$")
BLOCKED_EMAIL_FRAGMENTS = ("test@example.com", "example.com", "test.com")


class OtpError(Exception):
    message = "OTP verification failed"

    def __init__(self, contact: str):
        super().__init__(self.message)
        self.contact = contact


class OtpNotFound(OtpError):
    message = "OTP not found. Please request a new OTP."


class OtpExpired(OtpError):
    message = "OTP has expired. Please request a new OTP."


class OtpMismatch(OtpError):
    message = "Invalid OTP. Please try again."


@dataclass
class _Entry:
    code: str
    expires_at: float
    aliases: Tuple[str, ...]


def generate_code() -> str:
    return str(100000 + secrets.randbelow(900000))


def format_phone(number: str) -> str:
    """Best-effort E.164; bare 10-digit numbers are assumed Indian (+91)."""
    cleaned = re.sub(r"[^\d+]", "", number or "")
    if cleaned.startswith("+"):
        return cleaned
    if cleaned.startswith("91") and len(cleaned) == 12:
        return f"+{cleaned}"
    return f"+91{cleaned}"


def is_valid_phone(formatted: str) -> bool:
    return bool(E164_RE.match(formatted))


def check_email(email: str) -> Optional[str]:
    """Returns an error message, or None when the address is acceptable."""
    if not email:
        return "Email is required"
    if not EMAIL_RE.match(email):
        return "Invalid email format"
    lowered = email.lower()
    if any(blocked in lowered for blocked in BLOCKED_EMAIL_FRAGMENTS):
        return "Please use a valid email address (not test/example emails)"
    return None


def contact_aliases(contact: str) -> Tuple[str, ...]:
    """Keys a code may be stored under: the contact as typed plus its E.164 form."""
    contact = (contact or "").strip()
    if "@" in contact:
        return (contact.lower(),)
    if re.fullmatch(r"[\d+\s()-]+", contact):
        formatted = format_phone(contact)
        return (contact,) if formatted == contact else (contact, formatted)
    return (contact,)


class OtpStore:
    def __init__(self, ttl_seconds: int = 300, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def issue(self, contact: str, code: Optional[str] = None) -> str:
        code = code or generate_code()
        aliases = contact_aliases(contact)
        entry = _Entry(code=code, expires_at=self.clock() + self.ttl_seconds, aliases=aliases)
        with self._lock:
            for key in aliases:
                self._entries[key] = entry
        return code

    def verify(self, contact: str, code: str) -> None:
        """Raises an OtpError subclass; on success the code is consumed."""
        aliases = contact_aliases(contact)
        with self._lock:
            entry = next((self._entries[k] for k in aliases if k in self._entries), None)
            if entry is None:
                raise OtpNotFound(contact)
            if self.clock() > entry.expires_at:
                self._drop(entry)
                raise OtpExpired(contact)
            if not secrets.compare_digest(entry.code, str(code or "").strip()):
                raise OtpMismatch(contact)
            self._drop(entry)

    def sweep(self) -> int:
        now = self.clock()
        with self._lock:
            stale = [k for k, e in self._entries.items() if e.expires_at < now]
            for key in stale:
                del self._entries[key]
        if stale:
            log.info("Swept %s expired OTP entries", len(stale))
        return len(stale)

    def _drop(self, entry: _Entry) -> None:
        for key in entry.aliases:
            if self._entries.get(key) is entry:
                del self._entries[key]
