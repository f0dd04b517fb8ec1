# quoteforge/core/approval.py
"""Quote lifecycle state machine.

    draft/rejected --submit--> pending            (GM below the smart-approval floor)
    draft/rejected --submit--> approved           (GM at or above the floor)
    pending        --approve-> approved
    pending        --reject--> rejected
    approved       --accept--> accepted
    approved/accepted --amend--> new draft quote (revision + 1)
    any            --clone---> new draft quote (revision 1)

Every operation returns a new Quote; the quote passed in is never changed.
"""
import logging
import re
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, List, Mapping, Optional

from quoteforge.core.line_calculation import calculate_lines
from quoteforge.core.quote_totals import aggregate, check_approval_required
from quoteforge.core.types import (
    EventKind, LineInput, Quote, QuoteEvent, QuoteStatus, SubmissionResult
)
from quoteforge.exceptions import EmptyQuoteError, InvalidInputError, InvalidStateError
from quoteforge.utils.date_utils import utc_now, validity_window
from quoteforge.utils.math_utils import format_percent

logger = logging.getLogger(__name__)

SUBMITTABLE_STATUSES = (QuoteStatus.DRAFT, QuoteStatus.REJECTED)
EDITABLE_STATUSES = (QuoteStatus.DRAFT, QuoteStatus.REJECTED)
AMENDABLE_STATUSES = (QuoteStatus.APPROVED, QuoteStatus.ACCEPTED)

# Deletion steps, children before the parent row
DELETE_LINES = 'quote_lines'
DELETE_REVISIONS = 'quote_revisions'
DELETE_QUOTE = 'quote'

_AMENDMENT_SUFFIX = re.compile(r'-A\d+$')


def new_id() -> str:
    """Generate a new quote or public identifier."""
    return str(uuid.uuid4())


def base_quote_number(quote_number: str) -> str:
    """Strip an amendment suffix, e.g. 'QF-2024-0007-A3' -> 'QF-2024-0007'."""
    return _AMENDMENT_SUFFIX.sub('', quote_number)


def amendment_number(quote_number: str, revision_number: int) -> str:
    """Build the quote number of an amendment at the given revision."""
    return f"{base_quote_number(quote_number)}-A{revision_number}"


class ApprovalEngine:
    """Drives quotes through submission, approval, acceptance and amendment."""

    def __init__(
        self,
        rate_resolver,
        notifier: Optional[Callable[[QuoteEvent], None]] = None,
        id_factory: Callable[[], str] = new_id,
        clock: Callable[[], datetime] = utc_now
    ):
        """Initialize the engine.

        Args:
            rate_resolver: Object with a ``resolve()`` method returning PricingSettings
            notifier: Callable receiving approval and rejection events
            id_factory: Generates ids for cloned and amended quotes
            clock: Returns the current time
        """
        self.rate_resolver = rate_resolver
        self.notifier = notifier
        self.id_factory = id_factory
        self.clock = clock

    def submit(self, quote: Quote, submitter_id: str) -> SubmissionResult:
        """Submit a quote for approval.

        Quotes whose margin clears the smart-approval floor are approved
        immediately on behalf of the submitter.

        Args:
            quote: Quote in draft or rejected status
            submitter_id: User submitting the quote

        Returns:
            SubmissionResult with the updated quote and the margin check

        Raises:
            InvalidStateError if the quote is not draft or rejected
            EmptyQuoteError if the quote has no lines
        """
        self._require_status(quote, SUBMITTABLE_STATUSES, 'submit')
        if not quote.lines:
            raise EmptyQuoteError(details={'quote_id': quote.id})

        settings = self.rate_resolver.resolve()
        totals = aggregate(quote.lines)
        check = check_approval_required(totals.overall_gm_percent, settings)

        if check.requires_approval:
            submitted = replace(
                quote,
                status=QuoteStatus.PENDING,
                totals=totals,
                approver_id=None,
                approver_comments=None,
            )
            logger.info(f"Quote {quote.quote_number} submitted for approval (GM {format_percent(totals.overall_gm_percent)})")
        else:
            comment = (
                f"Auto-approved via Smart Approvals "
                f"(Margin: {format_percent(totals.overall_gm_percent)} >= {format_percent(settings.smart_approval_floor)})"
            )
            submitted = replace(
                quote,
                status=QuoteStatus.APPROVED,
                totals=totals,
                approver_id=submitter_id,
                approver_comments=comment,
            )
            logger.info(f"Quote {quote.quote_number} auto-approved (GM {format_percent(totals.overall_gm_percent)})")

        return SubmissionResult(quote=submitted, check=check, auto_approved=not check.requires_approval)

    def approve(self, quote: Quote, approver_id: str, comments: Optional[str] = None) -> Quote:
        """Approve a pending quote.

        The creator is not told here; call ``notify_decision`` once the
        decision has been saved.
        """
        return self._decide(quote, approver_id, comments, QuoteStatus.APPROVED, 'approve')

    def reject(self, quote: Quote, approver_id: str, comments: Optional[str] = None) -> Quote:
        """Reject a pending quote. See ``approve`` for notification."""
        return self._decide(quote, approver_id, comments, QuoteStatus.REJECTED, 'reject')

    def _decide(self, quote, approver_id, comments, status, action):
        self._require_status(quote, (QuoteStatus.PENDING,), action)

        decided = replace(quote, status=status, approver_id=approver_id, approver_comments=comments)
        logger.info(f"Quote {quote.quote_number} {status.value} by {approver_id}")
        return decided

    def decision_event(self, decided: Quote) -> QuoteEvent:
        """Build the creator notification for an approved or rejected quote."""
        self._require_status(decided, (QuoteStatus.APPROVED, QuoteStatus.REJECTED), 'notify')
        kinds = {QuoteStatus.APPROVED: EventKind.APPROVED, QuoteStatus.REJECTED: EventKind.REJECTED}
        return QuoteEvent(
            kind=kinds[decided.status],
            quote_id=decided.id,
            quote_number=decided.quote_number,
            creator_id=decided.creator_id,
            actor_id=decided.approver_id,
            comments=decided.approver_comments,
            occurred_at=self.clock(),
        )

    def notify_decision(self, decided: Quote) -> QuoteEvent:
        """Send the decision to the notifier, if one is configured."""
        event = self.decision_event(decided)
        if self.notifier is not None:
            self.notifier(event)
        return event

    def edit(self, quote: Quote, new_lines: Iterable[LineInput], privileged: bool = False) -> Quote:
        """Replace a quote's lines, recalculating them at the current VAT rate.

        Args:
            quote: Quote to edit
            new_lines: Replacement line inputs in quote order
            privileged: Caller may edit in any status (administrators)

        Returns:
            Quote with recalculated lines and totals

        Raises:
            InvalidStateError if the quote is locked for this caller
            InvalidInputError if any line is invalid
        """
        self.check_editable(quote, privileged)

        settings = self.rate_resolver.resolve()
        lines = tuple(calculate_lines(new_lines, settings.vat_rate, settings.default_markup_percent))
        return replace(quote, lines=lines, totals=aggregate(lines))

    def check_editable(self, quote: Quote, privileged: bool = False):
        """Raise InvalidStateError unless the caller may edit the quote."""
        if not privileged:
            self._require_status(quote, EDITABLE_STATUSES, 'edit')

    def clone(self, quote: Quote, creator_id: str, quote_number: str) -> Quote:
        """Copy a quote into a new draft.

        Lines and totals are copied verbatim, without recalculation. Allowed
        from any status.
        """
        settings = self.rate_resolver.resolve()
        now = self.clock()
        quote_date, valid_until = validity_window(now, settings.quote_validity_days)

        return Quote(
            id=self.id_factory(),
            quote_number=quote_number,
            creator_id=creator_id,
            client_name=f"{quote.client_name} (Copy)",
            status=QuoteStatus.DRAFT,
            lines=quote.lines,
            totals=quote.totals,
            customer_id=quote.customer_id,
            quote_date=quote_date,
            valid_until=valid_until,
            created_at=now,
            revision_number=1,
            parent_quote_id=None,
            public_id=self.id_factory(),
            notes=quote.notes,
            footer_notes=quote.footer_notes,
        )

    def amend(self, quote: Quote, creator_id: str) -> Quote:
        """Start an amendment of an approved or accepted quote.

        The amendment is a new draft one revision on from the original,
        linked back to it. The original is left untouched.

        Raises:
            InvalidStateError if the quote is not approved or accepted
        """
        self._require_status(quote, AMENDABLE_STATUSES, 'amend')

        settings = self.rate_resolver.resolve()
        now = self.clock()
        quote_date, valid_until = validity_window(now, settings.quote_validity_days)
        revision_number = quote.revision_number + 1

        return Quote(
            id=self.id_factory(),
            quote_number=amendment_number(quote.quote_number, revision_number),
            creator_id=creator_id,
            client_name=quote.client_name,
            status=QuoteStatus.DRAFT,
            lines=quote.lines,
            totals=quote.totals,
            customer_id=quote.customer_id,
            quote_date=quote_date,
            valid_until=valid_until,
            created_at=now,
            revision_number=revision_number,
            parent_quote_id=quote.id,
            public_id=self.id_factory(),
            notes=quote.notes,
            footer_notes=quote.footer_notes,
        )

    def accept(self, quote: Quote, signer_name: str) -> Quote:
        """Record the client's acceptance of an approved quote.

        Raises:
            InvalidInputError if no signer name is given
            InvalidStateError if the quote is not approved
        """
        if not signer_name or not str(signer_name).strip():
            raise InvalidInputError("Signer name is required", details={'field': 'accepted_by'})
        self._require_status(quote, (QuoteStatus.APPROVED,), 'accept')

        logger.info(f"Quote {quote.quote_number} accepted by {signer_name}")
        return replace(
            quote,
            status=QuoteStatus.ACCEPTED,
            accepted_at=self.clock(),
            accepted_by=str(signer_name).strip(),
        )

    def deletion_order(self, quote: Quote) -> List[str]:
        """Get the order in which a quote's rows must be deleted."""
        return [DELETE_LINES, DELETE_REVISIONS, DELETE_QUOTE]

    def revision_chain(self, quote: Quote, lookup: Mapping[str, Quote]) -> List[Quote]:
        """Walk amendment links back to the original quote.

        Args:
            quote: Latest quote in the chain
            lookup: Quotes by id (a dict, or anything with ``get``)

        Returns:
            Quotes oldest first, ending with ``quote``
        """
        chain = [quote]
        seen = {quote.id}
        current = quote
        while current.parent_quote_id is not None:
            parent = lookup.get(current.parent_quote_id)
            if parent is None:
                logger.warning(f"Parent {current.parent_quote_id} of quote {current.id} not found")
                break
            if parent.id in seen:
                logger.error(f"Amendment cycle detected at quote {parent.id}")
                break
            chain.append(parent)
            seen.add(parent.id)
            current = parent
        chain.reverse()
        return chain

    def _require_status(self, quote: Quote, allowed, action: str):
        if quote.status not in allowed:
            allowed_names = ', '.join(status.value for status in allowed)
            raise InvalidStateError(
                f"Cannot {action} a quote in '{quote.status.value}' status (allowed: {allowed_names})",
                current_status=quote.status.value,
                action=action,
            )
