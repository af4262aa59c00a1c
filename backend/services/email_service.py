from postmarker.core import PostmarkClient
from database import database
from models import MessageLog
from services.email_templates import build_booking_request_email, build_magic_link_email
from datetime import datetime, timezone
import asyncio
import os
import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Verified sender in Postmark
DEFAULT_SENDER = os.getenv("EMAIL_SENDER", "FwdLink <noreply@fwdlink.io>")

class EmailService:
    def __init__(self):
        postmark_token = os.getenv("POSTMARK_SERVER_TOKEN")
        if not postmark_token:
            logger.warning("POSTMARK_SERVER_TOKEN not set - emails will be logged but not sent")
            self.client = None
        else:
            self.client = PostmarkClient(server_token=postmark_token)
            logger.info("Postmark email client initialized")

    async def send_email(
        self,
        recipient: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
        reply_to: Optional[str] = None,
        tag: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> MessageLog:
        """Send an email and record it in message_logs.

        Never raises for provider errors: the returned log carries status
        "sent" or "failed" so callers can report delivery separately.
        """
        message_log = MessageLog(
            recipient=recipient,
            subject=subject,
            tag=tag,
            reference_id=reference_id,
        )

        try:
            if self.client:
                send_kwargs = {
                    "From": DEFAULT_SENDER,
                    "To": recipient,
                    "Subject": subject,
                    "HtmlBody": html_body,
                    "TrackOpens": True,
                    "TrackLinks": "HtmlOnly",
                }
                if text_body:
                    send_kwargs["TextBody"] = text_body
                if reply_to:
                    send_kwargs["ReplyTo"] = reply_to
                if tag:
                    send_kwargs["Tag"] = tag

                # postmarker is synchronous
                response = await asyncio.to_thread(self.client.emails.send, **send_kwargs)

                message_log.postmark_message_id = response["MessageID"]
                message_log.status = "sent"
                message_log.sent_at = datetime.now(timezone.utc)
                logger.info(f"Email sent to {recipient}: {response['MessageID']}")
            else:
                # Dev mode - just log
                message_log.status = "sent"
                message_log.sent_at = datetime.now(timezone.utc)
                logger.info(f"[DEV MODE] Email logged (not sent) to {recipient}: {subject}")

        except Exception as e:
            message_log.status = "failed"
            message_log.error_message = str(e)
            message_log.provider_error_type = type(e).__name__
            logger.error(f"Failed to send email to {recipient}: {e}")

        db = database.get_db()
        try:
            await db.message_logs.insert_one(message_log.model_dump())
        except Exception as e:
            logger.warning(f"Could not store message log {message_log.message_id}: {e}")

        return message_log

    async def send_booking_request_email(
        self,
        recipient: str,
        forwarder_name: str,
        booking: dict,
    ) -> MessageLog:
        """Notify a forwarder of a new booking request. Replies go to the shipper."""
        ready_date = booking["ready_date"]
        if isinstance(ready_date, datetime):
            ready_date = ready_date.strftime("%Y-%m-%d")

        email = build_booking_request_email(
            quote_short_id=booking["quote_short_id"],
            route=booking["route"],
            forwarder_name=forwarder_name,
            shipper_name=booking["shipper_name"],
            shipper_company=booking["shipper_company"],
            shipper_email=booking["shipper_email"],
            shipper_phone=booking["shipper_phone"],
            ready_date=str(ready_date),
            commodity=booking["commodity"],
            volume=booking["volume"],
            message=booking.get("message"),
        )

        return await self.send_email(
            recipient=recipient,
            subject=email["subject"],
            html_body=email["html"],
            text_body=email["text"],
            reply_to=booking["shipper_email"],
            tag="booking-request",
            reference_id=booking["booking_id"],
        )

    async def send_magic_link_email(self, recipient: str, sign_in_link: str, ttl_minutes: int) -> MessageLog:
        email = build_magic_link_email(sign_in_link, ttl_minutes)
        return await self.send_email(
            recipient=recipient,
            subject=email["subject"],
            html_body=email["html"],
            text_body=email["text"],
            tag="magic-link",
        )


email_service = EmailService()
