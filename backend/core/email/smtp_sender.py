"""
SMTP Email Sender

Delivers outbound emails once the pre-send interceptors have let them
through.
"""
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import formataddr, make_msgid
from typing import Optional, List
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


class SMTPSender:
    """Send emails via SMTP."""

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_username: Optional[str] = None,
        smtp_password: Optional[str] = None,
        from_name: str = '',
        from_email: Optional[str] = None,
        use_tls: bool = True
    ):
        """
        Initialize SMTP sender.

        Args:
            smtp_host: SMTP server hostname
            smtp_port: SMTP server port (587 for TLS, 465 for SSL)
            smtp_username: SMTP username (usually same as email)
            smtp_password: SMTP password or app-specific password
            from_name: Display name for From field
            from_email: Email address for From field
            use_tls: Use STARTTLS (SSL from the start otherwise)
        """
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.from_name = from_name
        self.from_email = from_email or smtp_username
        self.use_tls = use_tls

        if not self.is_configured:
            logger.warning(
                "SMTP not fully configured. Set SMTP_HOST, SMTP_USERNAME, SMTP_PASSWORD "
                "environment variables to enable email sending."
            )

    @classmethod
    def from_settings(cls, settings=None) -> "SMTPSender":
        from backend.core.config import get_settings

        settings = settings or get_settings()
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_username=settings.smtp_username,
            smtp_password=settings.smtp_password,
            from_name=settings.from_name,
            from_email=settings.from_email_address,
            use_tls=settings.smtp_use_tls,
        )

    @property
    def is_configured(self) -> bool:
        return all([self.smtp_host, self.smtp_username, self.smtp_password])

    def build_message(
        self,
        to_addresses: List[str],
        subject: str,
        body: str,
        cc_addresses: Optional[List[str]] = None,
        in_reply_to: Optional[str] = None,
        is_html: bool = False
    ):
        """Build the MIME message. Bcc is never written into the headers."""
        if is_html:
            msg = MIMEMultipart('alternative')
            msg.attach(MIMEText(body, 'plain'))
            msg.attach(MIMEText(body, 'html'))
        else:
            msg = MIMEText(body, 'plain', 'utf-8')

        msg['From'] = formataddr((self.from_name, self.from_email))
        msg['To'] = ', '.join(to_addresses)
        msg['Subject'] = subject
        msg['Message-ID'] = make_msgid(domain=self.from_email.split('@')[-1])

        if cc_addresses:
            msg['Cc'] = ', '.join(cc_addresses)

        # Threading headers (for replies)
        if in_reply_to:
            msg['In-Reply-To'] = in_reply_to
            msg['References'] = in_reply_to

        msg['Date'] = datetime.now(timezone.utc).strftime('%a, %d %b %Y %H:%M:%S +0000')
        return msg

    def send_email(
        self,
        to_addresses: List[str],
        subject: str,
        body: str,
        cc_addresses: Optional[List[str]] = None,
        bcc_addresses: Optional[List[str]] = None,
        in_reply_to: Optional[str] = None,
        is_html: bool = False
    ) -> Optional[str]:
        """
        Send an email via SMTP.

        Args:
            to_addresses: Recipient email addresses
            subject: Email subject
            body: Email body (plain text or HTML)
            cc_addresses: CC recipients
            bcc_addresses: BCC recipients (envelope only)
            in_reply_to: Message-ID this is replying to (for threading)
            is_html: Whether body is HTML

        Returns:
            Message-ID of sent email, or None if failed
        """
        if not self.is_configured:
            logger.error("SMTP not configured. Cannot send email.")
            return None

        recipients = list(to_addresses) + list(cc_addresses or []) + list(bcc_addresses or [])
        if not recipients:
            logger.error("No recipients, not sending")
            return None

        try:
            msg = self.build_message(to_addresses, subject, body, cc_addresses, in_reply_to, is_html)
            message_id = msg['Message-ID']

            if self.use_tls:
                server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30)
                server.starttls()
            else:
                server = smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, timeout=30)

            try:
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg, from_addr=self.from_email, to_addrs=recipients)
            finally:
                server.quit()

            logger.info(f"Email sent successfully to {len(recipients)} recipients: {subject}")
            logger.debug(f"Message-ID: {message_id}")

            return message_id

        except smtplib.SMTPException as e:
            logger.error(f"SMTP error sending email '{subject}': {e}", exc_info=True)
            return None
        except OSError as e:
            logger.error(f"Connection error sending email '{subject}': {e}", exc_info=True)
            return None
