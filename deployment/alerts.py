"""
Failure notifications via email and Slack
"""

import logging
import smtplib
from datetime import datetime
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Dict, Optional

import requests

from .config import Settings

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(self, smtp_server: str = "smtp.gmail.com", smtp_port: int = 587,
                 smtp_username: Optional[str] = None, smtp_password: Optional[str] = None,
                 notification_email: Optional[str] = None, slack_webhook: Optional[str] = None):
        self.smtp_server = smtp_server
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.notification_email = notification_email
        self.slack_webhook = slack_webhook

    @classmethod
    def from_settings(cls, settings: Settings) -> "Notifier":
        return cls(
            smtp_server=settings.smtp_server,
            smtp_port=settings.smtp_port,
            smtp_username=settings.smtp_username,
            smtp_password=settings.smtp_password,
            notification_email=settings.notification_email,
            slack_webhook=settings.slack_webhook,
        )

    def send_alert(self, message: str, details: Optional[Dict[str, str]] = None):
        """Send alert via email and/or Slack"""
        logger.error(f"ALERT: {message}")
        details = details or {}

        if self.smtp_username and self.smtp_password and self.notification_email:
            try:
                self._send_email_alert(message, details)
            except (smtplib.SMTPException, OSError) as e:
                logger.error(f"Failed to send email alert: {e}")

        if self.slack_webhook:
            try:
                self._send_slack_alert(message, details)
            except requests.RequestException as e:
                logger.error(f"Failed to send Slack alert: {e}")

    def _send_email_alert(self, message: str, details: Dict[str, str]):
        msg = MIMEMultipart()
        msg['From'] = self.smtp_username
        msg['To'] = self.notification_email
        msg['Subject'] = "Deployment Alert"

        lines = "\n".join(f"- {key}: {value}" for key, value in details.items())
        body = (
            f"Deployment Runner Alert\n\n"
            f"Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n"
            f"Message: {message}\n"
        )
        if lines:
            body += f"\nDetails:\n{lines}\n"

        msg.attach(MIMEText(body, 'plain'))

        with smtplib.SMTP(self.smtp_server, self.smtp_port) as server:
            server.starttls()
            server.login(self.smtp_username, self.smtp_password)
            server.send_message(msg)

    def _send_slack_alert(self, message: str, details: Dict[str, str]):
        payload = {
            "text": f"Deployment Alert: {message}",
            "attachments": [
                {
                    "fields": [
                        {"title": key, "value": str(value), "short": True}
                        for key, value in details.items()
                    ]
                }
            ]
        }

        response = requests.post(self.slack_webhook, json=payload, timeout=10)
        response.raise_for_status()
