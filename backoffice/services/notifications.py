"""
Notification Service
E-mails invoices and receipts to clients with the rendered PDF attached
"""
import html
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol, Union

from sqlalchemy.orm import Session

from backoffice.core.config import settings
from backoffice.core.exceptions import IntegrationError, ValidationError
from backoffice.core.logging import get_logger
from backoffice.models import PartyType
from backoffice.schemas.documents import (
    InvoiceDocument, MailAttachment, MailMessage, ReceiptDocument
)
from backoffice.services.balance import format_currency
from backoffice.services.documents import DocumentAssembler, DocumentGenerator

logger = get_logger("notifications")


class MailDispatcher(Protocol):
    def send(self, message: MailMessage) -> None:
        ...


class SmtpMailDispatcher:
    """Sends MailMessages through the SMTP server named in settings"""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        sender: Optional[str] = None
    ):
        self.host = host or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.user = user if user is not None else settings.SMTP_USER
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.use_tls = settings.SMTP_USE_TLS if use_tls is None else use_tls
        self.sender = sender or settings.MAIL_FROM

    def build_mime(self, message: MailMessage) -> MIMEMultipart:
        msg = MIMEMultipart()
        msg["From"] = self.sender
        msg["To"] = message.to
        msg["Subject"] = message.subject
        msg.attach(MIMEText(message.html, "html"))
        for attachment in message.attachments:
            subtype = attachment.content_type.split("/")[-1]
            part = MIMEApplication(attachment.content, _subtype=subtype)
            part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
            msg.attach(part)
        return msg

    def send(self, message: MailMessage) -> None:
        if not self.host:
            raise IntegrationError("SMTP_HOST is not configured")
        with smtplib.SMTP(self.host, self.port) as server:
            if self.use_tls:
                server.starttls()
            if self.user:
                server.login(self.user, self.password or "")
            server.send_message(self.build_mime(message))


def _party_label(document: Union[InvoiceDocument, ReceiptDocument]) -> str:
    return PartyType(document.party.party_type).value.capitalize()


def invoice_email(document: InvoiceDocument, recipient: str, pdf: bytes) -> MailMessage:
    name = html.escape(document.party.name)
    body = (
        f"<p>Dear {name},</p>"
        f"<p>Please find attached invoice #{document.invoice_id} dated "
        f"{document.created_at:%Y-%m-%d} for a total of "
        f"{format_currency(document.total_price, document.currency)}.</p>"
        f"<p>Amount outstanding: {format_currency(document.remaining_amount, document.currency)}</p>"
        f"<p>Thank you for your business.</p>"
    )
    return MailMessage(
        to=recipient,
        subject=f"Invoice #{document.invoice_id} - {_party_label(document)} Invoice",
        html=body,
        attachments=[MailAttachment(filename=f"Invoice_{document.invoice_id}.pdf", content=pdf)],
    )


def receipt_email(document: ReceiptDocument, recipient: str, pdf: bytes) -> MailMessage:
    name = html.escape(document.party.name)
    body = (
        f"<p>Dear {name},</p>"
        f"<p>We confirm receipt of your payment of "
        f"{format_currency(document.amount, document.currency)} on {document.paid_at:%Y-%m-%d}.</p>"
        f"<p>Your receipt #{document.receipt_id} is attached.</p>"
    )
    return MailMessage(
        to=recipient,
        subject=f"Receipt #{document.receipt_id} - {_party_label(document)} Payment",
        html=body,
        attachments=[MailAttachment(filename=f"Receipt_{document.receipt_id}.pdf", content=pdf)],
    )


class NotificationService:
    """Assembles a document, renders it and hands the e-mail to the dispatcher"""

    def __init__(
        self,
        db: Session,
        generator: DocumentGenerator,
        dispatcher: MailDispatcher,
        party: Union[PartyType, str] = PartyType.CLIENT
    ):
        self.assembler = DocumentAssembler(db, party)
        self.generator = generator
        self.dispatcher = dispatcher

    def send_invoice_email(self, invoice_id: int, recipient: Optional[str] = None) -> MailMessage:
        document = self.assembler.build_invoice_document(invoice_id)
        recipient = self._recipient(recipient, document.party.email)
        message = invoice_email(document, recipient, self._render(document))
        self._dispatch(message)
        return message

    def send_receipt_email(self, receipt_id: int, recipient: Optional[str] = None) -> MailMessage:
        document = self.assembler.build_receipt_document(receipt_id)
        recipient = self._recipient(recipient, document.party.email)
        message = receipt_email(document, recipient, self._render(document))
        self._dispatch(message)
        return message

    @staticmethod
    def _recipient(explicit: Optional[str], on_file: Optional[str]) -> str:
        recipient = explicit or on_file
        if not recipient:
            raise ValidationError("No e-mail address on file for this client")
        return recipient

    def _render(self, document) -> bytes:
        try:
            return self.generator.render(document)
        except Exception as e:
            logger.error(f"Failed to render {document.kind}: {e}")
            raise IntegrationError(f"Failed to generate document: {e}") from e

    def _dispatch(self, message: MailMessage) -> None:
        try:
            self.dispatcher.send(message)
        except Exception as e:
            logger.error(f"Failed to send '{message.subject}' to {message.to}: {e}")
            raise IntegrationError(f"Failed to send email: {e}") from e
        logger.info(f"Sent '{message.subject}' to {message.to}")
