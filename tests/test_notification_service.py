"""
Tests for approval notifications.
"""
import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from quoteforge.core.types import EventKind, QuoteEvent
from quoteforge.services.notification_service import LoggingNotifier


def make_event(kind):
    return QuoteEvent(
        kind=kind,
        quote_id='q-1',
        quote_number='QF-2024-0007',
        creator_id='sales-1',
        actor_id='manager-1',
        comments='Margin too thin',
        occurred_at=datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc),
    )


class TestLoggingNotifier(unittest.TestCase):
    def setUp(self):
        self.notifier = LoggingNotifier()

    def test_rejection_subject_and_recipient(self):
        message = self.notifier(make_event(EventKind.REJECTED))

        self.assertEqual(message['subject'], 'Quote QF-2024-0007 Rejected')
        self.assertEqual(message['recipient_id'], 'sales-1')
        self.assertEqual(message['event']['comments'], 'Margin too thin')
        self.assertEqual(list(self.notifier.sent), [message])

    def test_writes_to_notifications_log(self):
        with patch.object(self.notifier.logger, 'info') as info:
            self.notifier(make_event(EventKind.APPROVED))

        logged = info.call_args.args[0]
        self.assertIn('"subject": "Quote QF-2024-0007 Approved"', logged)

    def test_history_keeps_most_recent_messages(self):
        notifier = LoggingNotifier(history_size=2)
        for kind in (EventKind.APPROVED, EventKind.REJECTED, EventKind.APPROVED):
            notifier(make_event(kind))

        self.assertEqual(len(notifier.sent), 2)
        self.assertEqual(
            [message['subject'] for message in notifier.sent],
            ['Quote QF-2024-0007 Rejected', 'Quote QF-2024-0007 Approved']
        )
