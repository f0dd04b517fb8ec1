import json
from collections import deque

from quoteforge.core.types import EventKind, QuoteEvent
from quoteforge.logging_setup import get_logger


class LoggingNotifier:
    """Write approval decisions to the ``notifications`` log.

    The mail collaborator tails this log and e-mails the quote creator.
    """

    SUBJECTS = {
        EventKind.APPROVED: "Quote {quote_number} Approved",
        EventKind.REJECTED: "Quote {quote_number} Rejected",
    }

    def __init__(self, logger_name: str = 'notifications', history_size: int = 100):
        self.logger = get_logger(logger_name)
        # Most recent messages only
        self.sent = deque(maxlen=history_size)

    def __call__(self, event: QuoteEvent):
        message = {
            'subject': self.SUBJECTS[event.kind].format(quote_number=event.quote_number),
            'recipient_id': event.creator_id,
            'event': event.to_dict(),
        }
        self.logger.info(json.dumps(message, sort_keys=True))
        self.sent.append(message)
        return message
