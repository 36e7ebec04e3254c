from email.mime.text import MIMEText
import base64
from pathlib import Path
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from google.oauth2 import service_account
import logging
import os

logger = logging.getLogger(__name__)

# Local development key, used when SERVICE_ACCOUNT_FILE is not set
DEV_SERVICE_ACCOUNT_FILE = Path("./parkdude/reservations/service-account.json")


class GmailNotifier:
    """
    Sends reservation and release messages to the parking channel mailbox through the Gmail API.

    Delivery is fire-and-forget: send() logs failures and returns None instead of raising, so a failed
    notification never undoes a reservation that is already committed.
    """

    SCOPES = ['https://www.googleapis.com/auth/gmail.send']

    def __init__(self, service=None):
        self.sender = os.getenv('NOTIFICATION_SENDER', 'parkdude@example.com')
        self.recipient = os.getenv('NOTIFICATION_RECIPIENT', 'parking@example.com')
        self.service = service or self._connect()

    def _encode(self, subject: str, text: str):
        mail = MIMEText(text, 'plain', 'utf-8')
        mail['to'] = self.recipient
        mail['from'] = self.sender
        mail['subject'] = subject
        return {'raw': base64.urlsafe_b64encode(mail.as_bytes()).decode()}

    def send(self, text: str):
        # First line of every message is its header, e.g. "Reservations made by Tester:"
        subject = text.splitlines()[0].rstrip(':') if text else 'Parking update'
        try:
            sent_message = self.service.users().messages().send(userId='me', body=self._encode(subject, text)).execute()
        except HttpError as e:
            logger.error(f'Sending notification failed: {e}')
            sent_message = None
        return sent_message

    def _connect(self):
        # The service account sends as the notification mailbox
        key_file = os.getenv('SERVICE_ACCOUNT_FILE') or DEV_SERVICE_ACCOUNT_FILE
        creds = service_account.Credentials.from_service_account_file(key_file, scopes=self.SCOPES, subject=self.sender)
        return build("gmail", "v1", credentials=creds)


class LogNotifier:
    """Notifier for local development and tests: keeps the messages and logs them."""

    def __init__(self):
        self.messages = []

    def send(self, text: str):
        logger.info("Notification: %s", text)
        self.messages.append(text)
        return text
