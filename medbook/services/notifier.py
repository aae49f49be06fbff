"""
Booking notifications.

The booking engine only produces ``Notification`` intents. They are delivered
after the database transaction has committed, and a failed delivery is logged
and dropped: it never undoes a booking or a cancellation.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Protocol

from medbook.core import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    recipient: str
    subject: str
    body: str
    appointment_id: int | None = None


class Notifier(Protocol):
    def notify(self, recipient: str, subject: str, body: str) -> None:
        ...


class LoggingNotifier:
    """Writes notifications to the application log instead of sending them."""

    def notify(self, recipient: str, subject: str, body: str) -> None:
        logger.info('Notification to %s: %s | %s', recipient, subject, body)


class SesNotifier:
    """Sends notifications as plain-text email through AWS SES."""

    def __init__(self, sender: str, region_name: str, client=None):
        if client is None:
            import boto3

            client = boto3.client('ses', region_name=region_name)
        self.client = client
        self.sender = sender

    def notify(self, recipient: str, subject: str, body: str) -> None:
        response = self.client.send_email(
            Source=self.sender,
            Destination={'ToAddresses': [recipient]},
            Message={
                'Subject': {'Data': subject},
                'Body': {'Text': {'Data': body}},
            },
        )
        status_code = response.get('ResponseMetadata', {}).get('HTTPStatusCode')
        if status_code != 200:
            raise RuntimeError(f'SES rejected message to {recipient} with status {status_code}')


def build_notifier() -> Notifier:
    if config.NOTIFY_BACKEND == 'ses':
        return SesNotifier(sender=config.NOTIFY_SENDER, region_name=config.AWS_REGION)
    return LoggingNotifier()


_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    global _notifier

    if _notifier is None:
        _notifier = build_notifier()
    return _notifier


def deliver_all(notifier: Notifier, notifications: Iterable[Notification]) -> int:
    """Send each notification independently; return how many were delivered."""
    delivered = 0
    for notification in notifications:
        try:
            notifier.notify(notification.recipient, notification.subject, notification.body)
        except Exception:
            logger.exception(
                'Failed to deliver "%s" notification for appointment %s to %s',
                notification.subject,
                notification.appointment_id,
                notification.recipient,
            )
            continue
        delivered += 1
    return delivered
