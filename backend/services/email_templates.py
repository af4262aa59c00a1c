"""
Email Templates - Branded HTML + plaintext emails sent by FwdLink.
Includes: Booking Request (to forwarder), Magic Link sign-in.
All user-supplied values are HTML-escaped before interpolation.
"""
from typing import Dict, Optional
from datetime import datetime, timezone
from html import escape
from urllib.parse import quote
import os

# Branding constants
APP_NAME = "FwdLink"
BRAND_COLOR_PRIMARY = "#1e3a8a"  # Navy
BRAND_COLOR_ACCENT = "#10b981"  # Emerald
SUPPORT_EMAIL = os.getenv("EMAIL_SENDER", "noreply@fwdlink.io")


def _build_email_header(title: str, badge_text: Optional[str] = None) -> str:
    """Build consistent branded header."""
    badge_html = ""
    if badge_text:
        badge_html = f'<span style="background-color: {BRAND_COLOR_ACCENT}; color: white; padding: 4px 12px; border-radius: 4px; font-family: monospace; font-size: 12px; margin-left: 10px;">{badge_text}</span>'

    return f"""
        <div style="background-color: {BRAND_COLOR_PRIMARY}; padding: 25px; border-radius: 8px 8px 0 0;">
            <h1 style="color: white; margin: 0; font-size: 22px; display: inline-block;">{title}</h1>
            {badge_html}
        </div>
    """


def _build_email_footer() -> str:
    """Build consistent branded footer."""
    year = datetime.now(timezone.utc).year
    return f"""
        <hr style="border: none; border-top: 1px solid #eee; margin: 30px 0;">
        <p style="color: #64748b; font-size: 12px; margin: 0; text-align: center;">
            This message was sent via <strong>{APP_NAME}</strong><br>
            &copy; {year} {APP_NAME}. Professional freight quotes in 10 seconds.
        </p>
    """


def _row(label: str, value: str) -> str:
    return f"""
                    <tr>
                        <td style="padding: 8px 0; color: #64748b; width: 40%;">{label}</td>
                        <td style="padding: 8px 0; font-weight: 600;">{value}</td>
                    </tr>"""


# ============================================================================
# BOOKING REQUEST EMAIL (Sent to the quote owner)
# ============================================================================

def build_booking_request_email(
    quote_short_id: str,
    route: str,
    forwarder_name: str,
    shipper_name: str,
    shipper_company: str,
    shipper_email: str,
    shipper_phone: str,
    ready_date: str,
    commodity: str,
    volume: str,
    message: Optional[str] = None,
) -> Dict[str, str]:
    """
    Build 'New Booking Request' email - sent to the forwarder who owns the quote.

    Returns dict with 'subject', 'html', 'text' keys.
    """
    subject = f"[Booking Request] New Booking for Quote #{quote_short_id}"

    e = {k: escape(v or "") for k, v in {
        "quote": quote_short_id,
        "route": route,
        "forwarder": forwarder_name,
        "name": shipper_name,
        "company": shipper_company,
        "email": shipper_email,
        "phone": shipper_phone,
        "ready": ready_date,
        "commodity": commodity,
        "volume": volume,
        "message": message,
    }.items()}

    message_html = ""
    message_text = ""
    if message:
        message_html = f"""
            <div style="background-color: #fefce8; border-left: 4px solid #eab308; padding: 15px; margin: 20px 0;">
                <p style="margin: 0 0 5px 0; color: #854d0e; font-weight: 600;">Message from shipper</p>
                <p style="margin: 0; white-space: pre-wrap;">{e["message"]}</p>
            </div>
        """
        message_text = f"\nMessage:\n{message}\n"

    reply_href = f"mailto:{quote(shipper_email)}?subject={quote(f'Re: Booking Request for Quote #{quote_short_id}')}"

    html = f"""
    <!DOCTYPE html>
    <html lang="en">
    <head><meta charset="UTF-8"><title>New Booking Request</title></head>
    <body style="font-family: 'Segoe UI', Arial, sans-serif; line-height: 1.6; color: #1e293b; max-width: 600px; margin: 0 auto;">
        {_build_email_header("New Booking Request", e["quote"])}

        <div style="padding: 25px; border: 1px solid #e2e8f0; border-top: none; border-radius: 0 0 8px 8px; background: white;">
            <p>Hi {e["forwarder"]},</p>
            <p>A shipper has requested a booking on your quote <strong>#{e["quote"]}</strong> ({e["route"]}).</p>

            <div style="background-color: #f8fafc; padding: 20px; border-radius: 8px; margin: 20px 0;">
                <h3 style="color: {BRAND_COLOR_PRIMARY}; margin: 0 0 15px 0; font-size: 16px;">Shipper</h3>
                <table style="width: 100%; border-collapse: collapse;">{_row("Company", e["company"])}{_row("Name", e["name"])}{_row("Email", e["email"])}{_row("Phone", e["phone"])}
                </table>
            </div>

            <div style="background-color: #f8fafc; padding: 20px; border-radius: 8px; margin: 20px 0;">
                <h3 style="color: {BRAND_COLOR_PRIMARY}; margin: 0 0 15px 0; font-size: 16px;">Cargo</h3>
                <table style="width: 100%; border-collapse: collapse;">{_row("Ready Date", e["ready"])}{_row("Commodity", e["commodity"])}{_row("Volume", e["volume"])}
                </table>
            </div>
            {message_html}
            <div style="text-align: center; margin: 25px 0;">
                <a href="{escape(reply_href)}" style="background-color: {BRAND_COLOR_ACCENT}; color: white;
                          padding: 12px 30px; text-decoration: none; border-radius: 6px;
                          display: inline-block; font-weight: 600;">
                    Reply to Shipper
                </a>
            </div>
            {_build_email_footer()}
        </div>
    </body>
    </html>
    """

    text = f"""Hi {forwarder_name},

A shipper has requested a booking on your quote #{quote_short_id} ({route}).

SHIPPER
Company: {shipper_company}
Name: {shipper_name}
Email: {shipper_email}
Phone: {shipper_phone}

CARGO
Ready Date: {ready_date}
Commodity: {commodity}
Volume: {volume}
{message_text}
Reply directly to this email to contact the shipper.

--
{APP_NAME}
"""

    return {"subject": subject, "html": html, "text": text}


# ============================================================================
# MAGIC LINK EMAIL (Sign-in)
# ============================================================================

def build_magic_link_email(sign_in_link: str, ttl_minutes: int) -> Dict[str, str]:
    """Build the passwordless sign-in email."""
    subject = f"Sign in to {APP_NAME}"
    link = escape(sign_in_link)

    html = f"""
    <html>
    <body style="font-family: 'Segoe UI', Arial, sans-serif; line-height: 1.6; color: #1e293b; max-width: 600px; margin: 0 auto;">
        {_build_email_header(f"Sign in to {APP_NAME}")}
        <div style="padding: 25px; border: 1px solid #e2e8f0; border-top: none; border-radius: 0 0 8px 8px; background: white;">
            <p>Click the button below to sign in. The link can be used once.</p>
            <div style="text-align: center; margin: 25px 0;">
                <a href="{link}" style="background-color: {BRAND_COLOR_PRIMARY}; color: white;
                          padding: 12px 30px; text-decoration: none; border-radius: 6px;
                          display: inline-block; font-weight: 600;">
                    Sign in
                </a>
            </div>
            <p style="color: #666; font-size: 14px;">
                This link will expire in {ttl_minutes} minutes. If you didn't request this, please ignore this email.
            </p>
            {_build_email_footer()}
        </div>
    </body>
    </html>
    """

    text = f"""Sign in to {APP_NAME}:

{sign_in_link}

This link will expire in {ttl_minutes} minutes. If you didn't request this, please ignore this email.
"""

    return {"subject": subject, "html": html, "text": text}
