# quoteforge/services/rate_resolver.py
"""Where pricing settings come from.

The approval engine and the quote service ask a resolver for settings on
every operation, so an administrator's change to the VAT rate or the
thresholds applies to the next calculation without a restart.
"""
import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from quoteforge.config import Config, config as default_config
from quoteforge.core.types import PricingSettings
from quoteforge.models import Setting

logger = logging.getLogger(__name__)

# Setting keys an administrator may override in the settings table
SETTING_KEYS = (
    'vat_rate',
    'quote_validity_days',
    'low_gm_threshold',
    'critical_gm_threshold',
    'smart_approval_floor',
)


class RateResolver:
    """Source of the pricing settings in force."""

    def resolve(self) -> PricingSettings:
        raise NotImplementedError


class StaticRateResolver(RateResolver):
    """Fixed settings, for tests and batch tools."""

    def __init__(self, settings: Optional[PricingSettings] = None, **overrides):
        """Initialize the resolver.

        Args:
            settings: Settings to return (defaults when omitted)
            **overrides: Individual fields to override, e.g. ``vat_rate='0.15'``
        """
        base = settings.to_dict() if settings else PricingSettings().to_dict()
        base.update(overrides)
        self._settings = PricingSettings.from_mapping(base)

    def resolve(self) -> PricingSettings:
        return self._settings


class ConfigRateResolver(RateResolver):
    """Settings from the [PRICING] section of settings.ini."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or default_config

    def resolve(self) -> PricingSettings:
        return PricingSettings.from_mapping(self.config.pricing_config)


class SettingsTableRateResolver(RateResolver):
    """Settings from the ``settings`` table, falling back to config per key."""

    def __init__(self, session: Session, fallback: Optional[RateResolver] = None):
        """Initialize the resolver.

        Args:
            session: Database session
            fallback: Resolver consulted for keys missing from the table
        """
        self.session = session
        self.fallback = fallback or ConfigRateResolver()

    def _table_values(self) -> Dict[str, str]:
        rows = self.session.query(Setting).filter(Setting.key.in_(SETTING_KEYS)).all()
        return {row.key: row.value for row in rows if row.value is not None and str(row.value).strip()}

    def resolve(self) -> PricingSettings:
        values = self.fallback.resolve().to_dict()
        overrides = self._table_values()
        if overrides:
            logger.debug(f"Pricing settings overridden from settings table: {sorted(overrides)}")
        values.update(overrides)
        return PricingSettings.from_mapping(values)
