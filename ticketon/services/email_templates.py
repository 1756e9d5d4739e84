from __future__ import annotations

from html import escape


def format_amount(amount: int) -> str:
    return f"Rp {amount:,}".replace(",", ".")


def approved(*, user_name: str, event_title: str, amount: int) -> tuple[str, str]:
    subject = f"Your ticket for {event_title} is confirmed"
    body = f"""
  <div style="font-family: sans-serif; padding: 20px; color: #333;">
    <h2 style="color: #f97316;">Your ticket is confirmed!</h2>
    <p>Hi <strong>{escape(user_name)}</strong>,</p>
    <p>Your payment for <strong>{escape(event_title)}</strong> has been verified.</p>
    <div style="background-color: #f8fafc; padding: 15px; border-radius: 10px; margin: 20px 0;">
      <p style="margin: 0;"><strong>Total paid:</strong> {format_amount(amount)}</p>
    </div>
    <p>Open your transactions page to see the e-ticket.</p>
    <p>See you at the event!</p>
    <br>
    <p>Regards,<br>Team Ticketon</p>
  </div>
"""
    return subject, body


DEFAULT_REJECTION_REASON = "The payment proof is missing or invalid."


def rejected(*, user_name: str, event_title: str, reason: str | None = None) -> tuple[str, str]:
    subject = f"Your transaction for {event_title} was rejected"
    body = f"""
  <div style="font-family: sans-serif; padding: 20px; color: #333;">
    <h2 style="color: #ef4444;">Transaction rejected</h2>
    <p>Hi <strong>{escape(user_name)}</strong>,</p>
    <p>Sorry, your transaction for <strong>{escape(event_title)}</strong> was rejected.</p>
    <div style="background-color: #fef2f2; padding: 15px; border-radius: 10px; margin: 20px 0; border: 1px solid #fee2e2;">
      <p style="margin: 0; color: #b91c1c;"><strong>Reason:</strong> {escape(reason or DEFAULT_REJECTION_REASON)}</p>
    </div>
    <p>Your <strong>points, voucher and seats have been returned</strong> automatically.</p>
    <p>Feel free to book again, or contact support if this looks like a mistake.</p>
    <br>
    <p>Regards,<br>Team Ticketon</p>
  </div>
"""
    return subject, body
