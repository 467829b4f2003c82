"""Invoice email delivery through Postmark.

Without POSTMARK_SERVER_TOKEN the service runs in dev mode: messages are
logged, recorded in email_history as sent, and nothing leaves the process.
"""

from postmarker.core import PostmarkClient
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, List, Optional
from xml.sax.saxutils import escape
import base64
import logging
import os

from database import database
from invoicing.errors import RateLimitError
from invoicing.models.email import EmailHistory, EmailStatus, EmailType
from invoicing.models.invoice import CURRENCY_SYMBOLS

logger = logging.getLogger(__name__)

DEFAULT_SENDER = os.getenv("EMAIL_SENDER", "invoices@example.ge")
EMAIL_HOURLY_LIMIT = int(os.getenv("EMAIL_HOURLY_LIMIT", "100"))

EMAIL_LIMIT_EXCEEDED = "ელ.ფოსტის გაგზავნის ლიმიტი ამოიწურა. სცადეთ მოგვიანებით"
NO_PAYMENT_INSTRUCTIONS = "გადახდის ინსტრუქციები მითითებული არ არის"


def sanitize_recipients(emails: Optional[List[str]]) -> List[str]:
    """Trim, lowercase and de-duplicate, keeping first-seen order."""
    seen = []
    for email in emails or []:
        if not email:
            continue
        cleaned = str(email).strip().lower()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


def invoice_template_model(detail: Dict[str, Any], message: Optional[str] = None) -> Dict[str, Any]:
    company = detail.get("company") or {}
    client = detail.get("client") or {}
    accounts = detail.get("bank_accounts") or []
    instructions = "; ".join(
        f"{a.get('bank_name')}: {a.get('account_number')}" for a in accounts
    ) or NO_PAYMENT_INSTRUCTIONS
    currency = detail.get("currency", "GEL")
    return {
        "company_name": company.get("name", ""),
        "client_name": client.get("name", ""),
        "invoice_number": detail.get("invoice_number", ""),
        "total_amount": f"{float(detail.get('total') or 0):,.2f}",
        "currency": CURRENCY_SYMBOLS.get(currency, currency),
        "issue_date": detail.get("issue_date", ""),
        "due_date": detail.get("due_date", ""),
        "payment_instructions": instructions,
        "custom_message": message or "",
    }


class EmailService:
    def __init__(self):
        postmark_token = os.getenv("POSTMARK_SERVER_TOKEN")
        if not postmark_token:
            logger.warning("POSTMARK_SERVER_TOKEN not set - emails will be logged but not sent")
            self.client = None
        else:
            self.client = PostmarkClient(server_token=postmark_token)
            logger.info("Postmark email client initialized")

    def _get_db(self):
        return database.get_db()

    async def check_hourly_limit(self, user_id: str, recipient_count: int = 1) -> None:
        db = self._get_db()
        since = datetime.now(timezone.utc) - timedelta(hours=1)
        sent = await db.email_history.count_documents({"user_id": user_id, "sent_at": {"$gte": since}})
        if sent + recipient_count > EMAIL_HOURLY_LIMIT:
            logger.warning(f"Hourly email limit reached for user {user_id} ({sent} sent)")
            raise RateLimitError(EMAIL_LIMIT_EXCEEDED)

    async def send_invoice(
        self,
        user_id: str,
        detail: Dict[str, Any],
        to: List[str],
        cc: Optional[List[str]] = None,
        bcc: Optional[List[str]] = None,
        subject: Optional[str] = None,
        message: Optional[str] = None,
        pdf_bytes: Optional[bytes] = None,
        pdf_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send one invoice email and record a history row per recipient.

        Provider failures are recorded and returned with success=False rather
        than raised, so the caller can still answer the request.
        """
        db = self._get_db()
        to, cc, bcc = sanitize_recipients(to), sanitize_recipients(cc), sanitize_recipients(bcc)
        model = invoice_template_model(detail, message)
        subject = subject or f"ინვოისი #{model['invoice_number']} - {model['company_name']}"

        result = {"success": False, "message_id": None, "error": None}
        try:
            if self.client:
                send_kw = dict(
                    From=DEFAULT_SENDER,
                    To=",".join(to),
                    Subject=subject,
                    HtmlBody=self._build_html_body(model),
                    TextBody=self._build_text_body(model),
                    TrackOpens=True,
                    Tag=EmailType.INVOICE.value,
                )
                if cc:
                    send_kw["Cc"] = ",".join(cc)
                if bcc:
                    send_kw["Bcc"] = ",".join(bcc)
                if pdf_bytes:
                    send_kw["Attachments"] = [{
                        "Name": pdf_name or "invoice.pdf",
                        "Content": base64.b64encode(pdf_bytes).decode("ascii"),
                        "ContentType": "application/pdf",
                    }]
                response = self.client.emails.send(**send_kw)
                result["message_id"] = response["MessageID"]
                logger.info(f"Invoice email sent to {to}: {response['MessageID']}")
            else:
                logger.info(f"[DEV MODE] Invoice email logged (not sent) to {to}")
            result["success"] = True
        except Exception as e:
            result["error"] = str(e)
            logger.error(f"Failed to send invoice email to {to}: {e}")

        status = EmailStatus.SENT if result["success"] else EmailStatus.FAILED
        rows = [
            EmailHistory(
                user_id=user_id,
                company_id=detail.get("company_id"),
                invoice_id=detail.get("invoice_id"),
                type=EmailType.INVOICE,
                recipient=recipient,
                subject=subject,
                status=status,
                message_id=result["message_id"],
                error_message=result["error"],
            ).model_dump()
            for recipient in to + cc + bcc
        ]
        if rows:
            await db.email_history.insert_many(rows)

        return {**result, "subject": subject, "recipients": {"to": to, "cc": cc, "bcc": bcc}}

    async def history_for_invoice(self, invoice_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        db = self._get_db()
        return await db.email_history.find(
            {"invoice_id": invoice_id}, {"_id": 0}
        ).sort("sent_at", -1).to_list(limit)

    def _build_html_body(self, model: Dict[str, Any]) -> str:
        m = {k: escape(str(v)) for k, v in model.items()}
        custom = (
            f'<p style="background-color: #f0f9ff; border-left: 4px solid #0ea5e9; padding: 15px; margin: 20px 0;">'
            f'{m["custom_message"]}</p>'
        ) if model.get("custom_message") else ""
        return f"""
        <html>
        <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <div style="background-color: #0B1D3A; color: white; padding: 20px; border-radius: 8px 8px 0 0;">
                <h1 style="margin: 0;">{m['company_name']}</h1>
            </div>
            <div style="padding: 20px; border: 1px solid #e2e8f0; border-top: none; border-radius: 0 0 8px 8px;">
                <h2 style="color: #374151;">გამარჯობა, {m['client_name']}!</h2>
                <p style="line-height: 1.6; color: #4b5563;">
                    გთხოვთ იხილოთ ინვოისი #{m['invoice_number']} თანხით
                    <strong>{m['total_amount']} {m['currency']}</strong>.
                </p>
                {custom}
                <table style="width: 100%; color: #374151;">
                    <tr><td>ინვოისის ნომერი:</td><td>#{m['invoice_number']}</td></tr>
                    <tr><td>გამოწერის თარიღი:</td><td>{m['issue_date']}</td></tr>
                    <tr><td>გადახდის ვადა:</td><td>{m['due_date']}</td></tr>
                </table>
                <div style="background-color: #ecfdf5; padding: 15px; border-radius: 6px; margin-top: 20px;">
                    <h4 style="margin: 0 0 10px 0; color: #065f46;">გადახდის ინსტრუქციები:</h4>
                    <p style="margin: 0; color: #047857;">{m['payment_instructions']}</p>
                </div>
            </div>
        </body>
        </html>
        """

    def _build_text_body(self, model: Dict[str, Any]) -> str:
        lines = [
            f"გამარჯობა, {model['client_name']}!",
            "",
            f"გთხოვთ იხილოთ ინვოისი #{model['invoice_number']} თანხით {model['total_amount']} {model['currency']}.",
        ]
        if model.get("custom_message"):
            lines += ["", model["custom_message"]]
        lines += [
            "",
            "ინვოისის დეტალები:",
            f"- ინვოისის ნომერი: #{model['invoice_number']}",
            f"- გამოწერის თარიღი: {model['issue_date']}",
            f"- გადახდის ვადა: {model['due_date']}",
            "",
            "გადახდის ინსტრუქციები:",
            model["payment_instructions"],
            "",
            model["company_name"],
        ]
        return "\n".join(lines)


email_service = EmailService()
