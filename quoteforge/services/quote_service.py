# quoteforge/services/quote_service.py
import logging
import re
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quoteforge import models
from quoteforge.core.approval import (
    DELETE_LINES, DELETE_QUOTE, DELETE_REVISIONS, ApprovalEngine, new_id
)
from quoteforge.core.line_calculation import calculate_lines
from quoteforge.core.quote_totals import aggregate
from quoteforge.core.types import (
    LineBreakdown, LineInput, Quote, QuoteLine, QuoteStatus, QuoteTotals, SubmissionResult, WinAnalysis
)
from quoteforge.exceptions import DatabaseError, InvalidInputError, InvalidStateError, NotFoundError
from quoteforge.logging_setup import audit
from quoteforge.services.notification_service import LoggingNotifier
from quoteforge.services.rate_resolver import RateResolver, SettingsTableRateResolver
from quoteforge.utils.date_utils import utc_now, validity_window
from quoteforge.utils.math_utils import ZERO, to_decimal

logger = logging.getLogger(__name__)

QUOTE_NUMBER_PREFIX = 'QF'


def line_from_row(row: models.QuoteLine) -> QuoteLine:
    """Convert a stored quote line to its core representation."""
    inputs = LineInput(
        buy_price=row.buy_price,
        exchange_rate=row.exchange_rate,
        quantity=row.quantity,
        currency=row.currency or 'NZD',
        freight_rate=row.freight_rate if row.freight_rate is not None else ZERO,
        duty_rate=row.duty_rate if row.duty_rate is not None else ZERO,
        handling_rate=row.handling_rate if row.handling_rate is not None else ZERO,
        target_markup_percent=row.target_markup_percent,
        override_markup_percent=row.override_markup_percent,
        part_number=row.part_number,
        description=row.description,
        supplier_id=row.supplier_id,
        category_id=row.category_id,
        line_number=row.line_number,
    )
    breakdown = LineBreakdown(
        freight_amount=row.freight_amount,
        duty_amount=row.duty_amount,
        handling_amount=row.handling_amount,
        landed_cost=row.landed_cost,
        markup_percent=row.markup_percent,
        markup_amount=row.markup_amount,
        unit_sell_ex_vat=row.unit_sell_ex_vat,
        line_total_ex_vat=row.line_total_ex_vat,
        vat_amount=row.vat_amount,
        line_total_inc_vat=row.line_total_inc_vat,
    )
    return QuoteLine(inputs=inputs, breakdown=breakdown)


def line_to_row(quote_id: str, line: QuoteLine) -> models.QuoteLine:
    """Build a quote line row from a priced line."""
    inputs, breakdown = line.inputs, line.breakdown
    return models.QuoteLine(
        quote_id=quote_id,
        line_number=inputs.line_number,
        part_number=inputs.part_number,
        description=inputs.description,
        supplier_id=inputs.supplier_id,
        category_id=inputs.category_id,
        quantity=line.quantity,
        buy_price=to_decimal(inputs.buy_price),
        currency=inputs.currency,
        freight_rate=to_decimal(inputs.freight_rate),
        exchange_rate=to_decimal(inputs.exchange_rate),
        duty_rate=to_decimal(inputs.duty_rate),
        handling_rate=to_decimal(inputs.handling_rate),
        target_markup_percent=to_decimal(inputs.target_markup_percent),
        override_markup_percent=to_decimal(inputs.override_markup_percent),
        freight_amount=breakdown.freight_amount,
        duty_amount=breakdown.duty_amount,
        handling_amount=breakdown.handling_amount,
        landed_cost=breakdown.landed_cost,
        markup_percent=breakdown.markup_percent,
        markup_amount=breakdown.markup_amount,
        unit_sell_ex_vat=breakdown.unit_sell_ex_vat,
        line_total_ex_vat=breakdown.line_total_ex_vat,
        vat_amount=breakdown.vat_amount,
        line_total_inc_vat=breakdown.line_total_inc_vat,
    )


def quote_from_row(row: models.Quote) -> Quote:
    """Convert a stored quote and its lines to the core representation."""
    lines = tuple(line_from_row(line) for line in row.lines)
    totals = QuoteTotals(
        total_landed_cost=row.total_landed_cost or ZERO,
        total_markup=row.total_markup or ZERO,
        total_selling_ex_vat=row.total_selling_ex_vat or ZERO,
        total_vat=row.total_vat or ZERO,
        total_selling_inc_vat=row.total_selling_inc_vat or ZERO,
        overall_gm_percent=row.overall_gm_percent or ZERO,
        line_count=len(lines),
    )
    return Quote(
        id=row.id,
        quote_number=row.quote_number,
        creator_id=row.creator_id,
        client_name=row.client_name,
        status=QuoteStatus(row.status),
        lines=lines,
        totals=totals,
        customer_id=row.customer_id,
        quote_date=row.quote_date,
        valid_until=row.valid_until,
        created_at=row.created_at,
        approver_id=row.approver_id,
        approver_comments=row.approver_comments,
        accepted_at=row.accepted_at,
        accepted_by=row.accepted_by,
        revision_number=row.revision_number or 1,
        parent_quote_id=row.parent_quote_id,
        public_id=row.public_id,
        notes=row.notes,
        footer_notes=row.footer_notes,
        is_template=bool(row.is_template),
        win_probability=row.win_probability,
        ai_analysis=WinAnalysis.from_dict(row.ai_analysis) if row.ai_analysis else None,
    )


def apply_quote_to_row(row: models.Quote, quote: Quote):
    """Copy the header fields and totals of a quote onto its row."""
    row.quote_number = quote.quote_number
    row.client_name = quote.client_name
    row.quote_date = quote.quote_date
    row.valid_until = quote.valid_until
    row.status = quote.status
    row.creator_id = quote.creator_id
    row.customer_id = quote.customer_id
    row.approver_id = quote.approver_id
    row.approver_comments = quote.approver_comments
    row.notes = quote.notes
    row.footer_notes = quote.footer_notes
    row.total_landed_cost = quote.totals.total_landed_cost
    row.total_markup = quote.totals.total_markup
    row.total_selling_ex_vat = quote.totals.total_selling_ex_vat
    row.total_vat = quote.totals.total_vat
    row.total_selling_inc_vat = quote.totals.total_selling_inc_vat
    row.overall_gm_percent = quote.totals.overall_gm_percent
    row.public_id = quote.public_id or row.public_id or new_id()
    row.accepted_at = quote.accepted_at
    row.accepted_by = quote.accepted_by
    row.revision_number = quote.revision_number
    row.parent_quote_id = quote.parent_quote_id
    row.win_probability = quote.win_probability
    row.ai_analysis = quote.ai_analysis.to_dict() if quote.ai_analysis else None
    row.is_template = quote.is_template
    if quote.created_at is not None:
        row.created_at = quote.created_at


class _StoredQuotes:
    """Read-only quote lookup by id, for walking amendment chains."""

    def __init__(self, service: 'QuoteService'):
        self.service = service

    def get(self, quote_id, default=None):
        row = self.service.session.get(models.Quote, quote_id)
        return quote_from_row(row) if row is not None else default


class QuoteService:
    """Service for persisted quotes and their approval workflow."""

    def __init__(
        self,
        session: Session,
        rate_resolver: Optional[RateResolver] = None,
        notifier=None,
        clock=utc_now
    ):
        """Initialize the quote service.

        Args:
            session: Database session
            rate_resolver: Source of pricing settings (settings table by default)
            notifier: Receives approval and rejection events
            clock: Returns the current time
        """
        self.session = session
        self.rate_resolver = rate_resolver or SettingsTableRateResolver(session)
        self.notifier = notifier if notifier is not None else LoggingNotifier()
        self.clock = clock
        self.engine = ApprovalEngine(self.rate_resolver, self.notifier, clock=clock)

    @contextmanager
    def _transaction(self, action: str, quote_id: Optional[str] = None):
        try:
            yield
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Failed to {action} quote {quote_id}: {str(e)}")
            raise DatabaseError(
                f"Failed to {action} quote: {str(e)}",
                details={'quote_id': quote_id, 'action': action}
            ) from e

    def _get_row(self, quote_id: str) -> models.Quote:
        row = self.session.get(models.Quote, quote_id)
        if row is None:
            raise NotFoundError(f"Quote {quote_id} not found", details={'quote_id': quote_id})
        return row

    def _write_lines(self, quote_id: str, lines: Iterable[QuoteLine]):
        self.session.query(models.QuoteLine).filter(
            models.QuoteLine.quote_id == quote_id
        ).delete(synchronize_session=False)
        for line in lines:
            self.session.add(line_to_row(quote_id, line))

    def _insert(self, quote: Quote):
        row = models.Quote(id=quote.id)
        apply_quote_to_row(row, quote)
        self.session.add(row)
        self.session.flush()
        self._write_lines(quote.id, quote.lines)

    def _snapshot(self, quote: Quote, user_id: Optional[str], change_reason: str) -> models.QuoteRevision:
        """Append a snapshot of the quote's current state to its revision history."""
        last = self.session.query(func.max(models.QuoteRevision.revision_number)).filter(
            models.QuoteRevision.quote_id == quote.id
        ).scalar()
        revision = models.QuoteRevision(
            quote_id=quote.id,
            revision_number=(last or 0) + 1,
            snapshot=quote.to_dict(),
            user_id=user_id,
            change_reason=change_reason,
            created_at=self.clock(),
        )
        self.session.add(revision)
        return revision

    def generate_quote_number(self, now: Optional[datetime] = None) -> str:
        """Get the next quote number for the year, e.g. 'QF-2024-0042'.

        Amendment numbers ('QF-2024-0042-A2') do not advance the sequence.
        """
        year = (now or self.clock()).year
        prefix = f"{QUOTE_NUMBER_PREFIX}-{year}-"
        pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")

        numbers = self.session.query(models.Quote.quote_number).filter(
            models.Quote.quote_number.like(f"{prefix}%")
        ).all()

        last = 0
        for (quote_number,) in numbers:
            match = pattern.match(quote_number)
            if match:
                last = max(last, int(match.group(1)))

        return f"{prefix}{last + 1:04d}"

    def create_quote(
        self,
        creator_id: str,
        client_name: str,
        lines: Iterable[LineInput] = (),
        customer_id: Optional[str] = None,
        notes: Optional[str] = None,
        footer_notes: Optional[str] = None,
        is_template: bool = False
    ) -> Quote:
        """Create a draft quote, pricing its lines at the current settings.

        Args:
            creator_id: User creating the quote
            client_name: Client the quote is addressed to
            lines: Line inputs in quote order
            customer_id: Customer record, if any
            notes: Notes printed on the quote
            footer_notes: Footer text printed on the quote
            is_template: Save as a reusable template

        Returns:
            The created quote

        Raises:
            InvalidInputError if the client name is blank or a line is invalid
        """
        if is_template:
            client_name = client_name or 'Template'
        if not client_name or not client_name.strip():
            raise InvalidInputError("Client name is required", details={'field': 'client_name'})

        settings = self.rate_resolver.resolve()
        priced = tuple(calculate_lines(lines, settings.vat_rate, settings.default_markup_percent))
        now = self.clock()
        quote_date, valid_until = validity_window(now, settings.quote_validity_days)

        quote = Quote(
            id=new_id(),
            quote_number=self.generate_quote_number(now),
            creator_id=creator_id,
            client_name=client_name.strip(),
            status=QuoteStatus.DRAFT,
            lines=priced,
            totals=aggregate(priced),
            customer_id=customer_id,
            quote_date=quote_date,
            valid_until=valid_until,
            created_at=now,
            public_id=new_id(),
            notes=notes,
            footer_notes=footer_notes,
            is_template=is_template,
        )

        with self._transaction('create', quote.id):
            self._insert(quote)

        logger.info(f"Created quote {quote.quote_number} with {len(priced)} lines")
        audit('create', 'quote', quote.id, creator_id, {'quote_number': quote.quote_number})
        return quote

    def get_quote(self, quote_id: str) -> Quote:
        """Get a quote by ID.

        Raises:
            NotFoundError if no such quote exists
        """
        return quote_from_row(self._get_row(quote_id))

    def get_quote_by_public_id(self, public_id: str) -> Quote:
        """Get a quote by its client-portal identifier.

        Raises:
            NotFoundError if no quote has this public id
        """
        row = self.session.query(models.Quote).filter(models.Quote.public_id == public_id).first()
        if row is None:
            raise NotFoundError("Quote not found or invalid link", details={'public_id': public_id})
        return quote_from_row(row)

    def list_quotes(
        self,
        status: Optional[QuoteStatus] = None,
        creator_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        include_templates: bool = True
    ) -> List[Quote]:
        """List quotes, newest quote number first."""
        query = self.session.query(models.Quote)
        if status is not None:
            query = query.filter(models.Quote.status == QuoteStatus(status))
        if creator_id is not None:
            query = query.filter(models.Quote.creator_id == creator_id)
        if customer_id is not None:
            query = query.filter(models.Quote.customer_id == customer_id)
        if not include_templates:
            query = query.filter(models.Quote.is_template.is_(False))
        return [quote_from_row(row) for row in query.order_by(models.Quote.quote_number.desc()).all()]

    def update_quote(
        self,
        quote_id: str,
        user_id: str,
        lines: Optional[Iterable[LineInput]] = None,
        client_name: Optional[str] = None,
        notes: Optional[str] = None,
        footer_notes: Optional[str] = None,
        privileged: bool = False,
        change_reason: Optional[str] = None
    ) -> Quote:
        """Edit a quote, snapshotting its previous state first.

        Args:
            quote_id: Quote ID
            user_id: User making the change
            lines: Replacement lines; None keeps the current lines
            client_name: New client name; None keeps the current one
            notes: New notes; None keeps the current notes
            footer_notes: New footer notes; None keeps the current ones
            privileged: Caller is an administrator and may edit in any status
            change_reason: Reason recorded on the revision snapshot

        Returns:
            The updated quote
        """
        current = self.get_quote(quote_id)
        self.engine.check_editable(current, privileged)

        updated = current
        if lines is not None:
            updated = self.engine.edit(current, lines, privileged=privileged)

        changes = {}
        if client_name:
            changes['client_name'] = client_name.strip()
        if notes is not None:
            changes['notes'] = notes
        if footer_notes is not None:
            changes['footer_notes'] = footer_notes
        if changes:
            updated = replace(updated, **changes)

        with self._transaction('update', quote_id):
            self._snapshot(current, user_id, change_reason or 'Quote edited')
            apply_quote_to_row(self._get_row(quote_id), updated)
            if lines is not None:
                self._write_lines(quote_id, updated.lines)

        audit('update', 'quote', quote_id, user_id, {'lines_replaced': lines is not None, **changes})
        return updated

    def delete_quote(self, quote_id: str, user_id: Optional[str] = None):
        """Delete a quote, removing its lines and revisions first."""
        row = self._get_row(quote_id)
        quote_number = row.quote_number

        with self._transaction('delete', quote_id):
            for step in self.engine.deletion_order(quote_from_row(row)):
                if step == DELETE_LINES:
                    self.session.query(models.QuoteLine).filter(
                        models.QuoteLine.quote_id == quote_id
                    ).delete(synchronize_session=False)
                elif step == DELETE_REVISIONS:
                    self.session.query(models.QuoteRevision).filter(
                        models.QuoteRevision.quote_id == quote_id
                    ).delete(synchronize_session=False)
                elif step == DELETE_QUOTE:
                    self.session.query(models.Quote).filter(
                        models.Quote.id == quote_id
                    ).delete(synchronize_session=False)
                self.session.flush()

        self.session.expunge_all()
        logger.info(f"Deleted quote {quote_number}")
        audit('delete', 'quote', quote_id, user_id, {'quote_number': quote_number})

    def submit_quote(self, quote_id: str, submitter_id: str) -> SubmissionResult:
        """Submit a quote for approval, auto-approving healthy margins."""
        result = self.engine.submit(self.get_quote(quote_id), submitter_id)

        with self._transaction('submit', quote_id):
            apply_quote_to_row(self._get_row(quote_id), result.quote)

        audit('auto_approve' if result.auto_approved else 'submit', 'quote', quote_id, submitter_id, {
            'gm_percent': str(result.check.gm_percent),
            'floor': str(result.check.floor),
        })
        return result

    def approve_quote(self, quote_id: str, approver_id: str, comments: Optional[str] = None) -> Quote:
        """Approve a pending quote."""
        return self._decide(quote_id, approver_id, comments, 'approve')

    def reject_quote(self, quote_id: str, approver_id: str, comments: Optional[str] = None) -> Quote:
        """Reject a pending quote."""
        return self._decide(quote_id, approver_id, comments, 'reject')

    def _decide(self, quote_id, approver_id, comments, action):
        current = self.get_quote(quote_id)
        if action == 'approve':
            decided = self.engine.approve(current, approver_id, comments)
        else:
            decided = self.engine.reject(current, approver_id, comments)

        with self._transaction(action, quote_id):
            apply_quote_to_row(self._get_row(quote_id), decided)

        audit(action, 'quote', quote_id, approver_id, {'comments': comments})
        self.engine.notify_decision(decided)
        return decided

    def clone_quote(self, quote_id: str, creator_id: str) -> Quote:
        """Copy a quote into a new draft with its lines unchanged."""
        source = self.get_quote(quote_id)
        clone = self.engine.clone(source, creator_id, self.generate_quote_number())

        with self._transaction('clone', clone.id):
            self._insert(clone)

        audit('clone', 'quote', clone.id, creator_id, {
            'source_quote_id': source.id,
            'source_quote_number': source.quote_number,
        })
        return clone

    def amend_quote(self, quote_id: str, creator_id: str) -> Quote:
        """Create an amendment of an approved or accepted quote.

        Raises:
            InvalidStateError if the quote cannot be amended or already has
            an amendment at the next revision
        """
        original = self.get_quote(quote_id)
        amendment = self.engine.amend(original, creator_id)

        exists = self.session.query(models.Quote.id).filter(
            models.Quote.quote_number == amendment.quote_number
        ).first()
        if exists is not None:
            raise InvalidStateError(
                f"Quote {original.quote_number} already has amendment {amendment.quote_number}",
                current_status=original.status.value,
                action='amend',
            )

        with self._transaction('amend', amendment.id):
            self._snapshot(original, creator_id, f"Amended as {amendment.quote_number}")
            self._insert(amendment)

        audit('amend', 'quote', amendment.id, creator_id, {
            'original_quote_id': original.id,
            'original_quote_number': original.quote_number,
        })
        return amendment

    def accept_quote(self, public_id: str, signer_name: str) -> Quote:
        """Record a client's acceptance from the portal."""
        current = self.get_quote_by_public_id(public_id)
        accepted = self.engine.accept(current, signer_name)

        with self._transaction('accept', current.id):
            apply_quote_to_row(self._get_row(current.id), accepted)

        audit('accept', 'quote', current.id, None, {'accepted_by': accepted.accepted_by})
        return accepted

    def get_versions(self, quote_id: str) -> List[Dict[str, Any]]:
        """Get the revision snapshots of a quote, newest first."""
        self._get_row(quote_id)
        revisions = self.session.query(models.QuoteRevision).filter(
            models.QuoteRevision.quote_id == quote_id
        ).order_by(models.QuoteRevision.revision_number.desc()).all()

        return [
            {
                'id': revision.id,
                'quote_id': revision.quote_id,
                'revision_number': revision.revision_number,
                'snapshot': revision.snapshot,
                'user_id': revision.user_id,
                'change_reason': revision.change_reason,
                'created_at': revision.created_at,
            }
            for revision in revisions
        ]

    def get_revision_chain(self, quote_id: str) -> List[Quote]:
        """Get a quote and the quotes it amends, oldest first."""
        return self.engine.revision_chain(self.get_quote(quote_id), _StoredQuotes(self))
