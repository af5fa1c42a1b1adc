"""
Email channel implementation
"""
import html
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Dict, Any, List

from alert_engine.models import AlertNotification
from .base import Channel, DispatchResult


class EmailChannel(Channel):
    """SMTP email channel for alert notifications"""

    name = 'email'

    SEVERITY_COLORS = {
        'critical': '#d32f2f',
        'error': '#f57c00',
        'warning': '#fbc02d',
        'info': '#388e3c'
    }

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.smtp_host = config.get('smtp_host', 'localhost')
        self.smtp_port = config.get('smtp_port', 587)
        self.smtp_user = config.get('smtp_user')
        self.smtp_password = config.get('smtp_password')
        self.from_email = config.get('from_email', 'alerts@localhost')
        self.to_emails = config.get('to_emails', [])
        self.use_tls = config.get('use_tls', True)

    def resolve_recipients(self, notification: AlertNotification) -> List[str]:
        """Rule recipients win; configured addresses are the fallback."""
        return list(notification.recipients or self.to_emails)

    def format_message(self, notification: AlertNotification) -> Dict[str, Any]:
        """
        Format alert as subject plus HTML and plain-text bodies

        The message and title were escaped during interpolation and are
        inserted as-is; everything else is escaped here.
        """
        severity = notification.severity.value
        color = self.SEVERITY_COLORS.get(severity, '#757575')
        subject = f"[{severity.upper()}] {notification.title}"

        link_html = ''
        if notification.link:
            link = html.escape(notification.link, quote=True)
            link_html = f'<p><a href="{link}">View details</a></p>'

        body_html = f"""
        <html>
        <body style="font-family: Arial, sans-serif; color: #333;">
            <div style="background-color: {color}; color: white; padding: 16px;">
                <h2>{notification.title}</h2>
                <p><strong>Severity:</strong> {severity.upper()}</p>
            </div>
            <div style="padding: 16px;">
                <p>{notification.message}</p>
                <p><strong>Module:</strong> {html.escape(notification.module_name or 'global')}</p>
                <p><strong>Triggered At:</strong> {notification.triggered_at.strftime('%Y-%m-%d %H:%M:%S UTC')}</p>
                {link_html}
            </div>
        </body>
        </html>
        """

        body_text = (
            f"{notification.title}\n\n"
            f"Severity: {severity.upper()}\n"
            f"Module: {notification.module_name or 'global'}\n\n"
            f"{html.unescape(notification.message)}\n"
        )
        if notification.link:
            body_text += f"\n{notification.link}\n"

        return {
            'subject': html.unescape(subject),
            'html': body_html,
            'text': body_text
        }

    def send(self, notification: AlertNotification, **kwargs) -> DispatchResult:
        """
        Send alert via email

        Args:
            notification: Alert to announce
            **kwargs: Additional parameters

        Returns:
            DispatchResult
        """
        recipients = self.resolve_recipients(notification)

        if self.dry_run:
            self.logger.info(f"[DRY RUN] Would send email to {recipients}: {notification.title}")
            return self._result(notification, True, response={'dry_run': True})

        if not self.enabled:
            return self._result(notification, False, error="Email channel disabled")

        if not recipients:
            self.logger.error("No recipient emails configured")
            return self._result(notification, False, error="No recipient emails configured")

        try:
            message_data = self.format_message(notification)

            msg = MIMEMultipart('alternative')
            msg['Subject'] = message_data['subject']
            msg['From'] = self.from_email
            msg['To'] = ', '.join(recipients)

            msg.attach(MIMEText(message_data['text'], 'plain'))
            msg.attach(MIMEText(message_data['html'], 'html'))

            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()

                if self.smtp_user and self.smtp_password:
                    server.login(self.smtp_user, self.smtp_password)

                server.send_message(msg)

            self.logger.info(f"Sent alert email to {recipients}: {notification.title}")

            return self._result(notification, True, response={'recipients': recipients})

        except Exception as e:
            self.logger.error(f"Failed to send email: {e}", exc_info=True)
            return self._result(notification, False, error=str(e))
