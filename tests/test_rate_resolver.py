"""
Tests for pricing settings resolution.
"""
import unittest
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from quoteforge.core.types import PricingSettings
from quoteforge.exceptions import ConfigError
from quoteforge.models import Setting
from quoteforge.services.rate_resolver import (
    ConfigRateResolver, SettingsTableRateResolver, StaticRateResolver
)


class TestPricingSettings(unittest.TestCase):
    def test_defaults(self):
        settings = PricingSettings()

        self.assertEqual(settings.vat_rate, Decimal("0.125"))
        self.assertEqual(settings.quote_validity_days, 14)
        self.assertEqual(settings.low_gm_threshold, Decimal("0.08"))
        self.assertEqual(settings.critical_gm_threshold, Decimal("0.05"))
        self.assertEqual(settings.smart_approval_floor, Decimal("0.15"))
        self.assertEqual(settings.base_currency, 'FJD')

    def test_ratio_out_of_range(self):
        with pytest.raises(ConfigError):
            PricingSettings(vat_rate="1.25")
        with pytest.raises(ConfigError):
            PricingSettings(smart_approval_floor="-0.01")

    def test_non_numeric_ratio(self):
        with pytest.raises(ConfigError):
            PricingSettings(vat_rate="twelve")

    def test_validity_days(self):
        with pytest.raises(ConfigError):
            PricingSettings(quote_validity_days=0)
        self.assertEqual(PricingSettings(quote_validity_days="30").quote_validity_days, 30)

    def test_critical_above_low(self):
        with pytest.raises(ConfigError) as exc_info:
            PricingSettings(low_gm_threshold="0.05", critical_gm_threshold="0.08")
        self.assertEqual(exc_info.value.code, 'CONFIG_ERROR')

    def test_from_mapping_ignores_unknown_and_empty_keys(self):
        settings = PricingSettings.from_mapping({'vat_rate': '0.15', 'theme': 'dark', 'smart_approval_floor': None})
        self.assertEqual(settings.vat_rate, Decimal("0.15"))
        self.assertEqual(settings.smart_approval_floor, Decimal("0.15"))


class TestStaticRateResolver(unittest.TestCase):
    def test_defaults(self):
        self.assertEqual(StaticRateResolver().resolve(), PricingSettings())

    def test_overrides(self):
        settings = StaticRateResolver(vat_rate="0.09").resolve()
        self.assertEqual(settings.vat_rate, Decimal("0.09"))
        self.assertEqual(settings.quote_validity_days, 14)

    def test_invalid_override(self):
        with pytest.raises(ConfigError):
            StaticRateResolver(vat_rate="2")


class TestConfigRateResolver(unittest.TestCase):
    def test_reads_pricing_section(self):
        config = MagicMock()
        config.pricing_config = {
            'base_currency': 'FJD',
            'vat_rate': '0.15',
            'quote_validity_days': 30,
            'low_gm_threshold': '0.10',
            'critical_gm_threshold': '0.06',
            'smart_approval_floor': '0.18',
            'default_markup_percent': '0.30',
        }

        settings = ConfigRateResolver(config).resolve()

        self.assertEqual(settings.vat_rate, Decimal("0.15"))
        self.assertEqual(settings.quote_validity_days, 30)
        self.assertEqual(settings.smart_approval_floor, Decimal("0.18"))
        self.assertEqual(settings.default_markup_percent, Decimal("0.30"))

    def test_invalid_config_raises(self):
        config = MagicMock()
        config.pricing_config = {'vat_rate': '1.5'}
        with pytest.raises(ConfigError):
            ConfigRateResolver(config).resolve()

    def test_default_config_file(self):
        self.assertEqual(ConfigRateResolver().resolve(), PricingSettings())


class TestSettingsTableRateResolver:
    def test_falls_back_to_config_when_table_is_empty(self, session):
        resolver = SettingsTableRateResolver(session, fallback=StaticRateResolver(vat_rate="0.10"))
        self.assert_vat(resolver, "0.10")

    def test_table_overrides_per_key(self, session):
        session.add_all([
            Setting(key='vat_rate', value='0.15', value_type='number'),
            Setting(key='quote_validity_days', value='21', value_type='number'),
            Setting(key='company_name', value='Acme', value_type='string'),
        ])
        session.commit()

        settings = SettingsTableRateResolver(session, fallback=StaticRateResolver(smart_approval_floor="0.2")).resolve()

        assert settings.vat_rate == Decimal("0.15")
        assert settings.quote_validity_days == 21
        assert settings.smart_approval_floor == Decimal("0.2")

    def test_changes_apply_on_next_resolve(self, session):
        resolver = SettingsTableRateResolver(session, fallback=StaticRateResolver())
        self.assert_vat(resolver, "0.125")

        session.add(Setting(key='vat_rate', value='0.09'))
        session.commit()
        self.assert_vat(resolver, "0.09")

    def test_blank_value_falls_back(self, session):
        session.add(Setting(key='vat_rate', value='  '))
        session.commit()
        self.assert_vat(SettingsTableRateResolver(session, fallback=StaticRateResolver()), "0.125")

    def test_invalid_table_value(self, session):
        session.add(Setting(key='smart_approval_floor', value='1.7'))
        session.commit()
        with pytest.raises(ConfigError):
            SettingsTableRateResolver(session, fallback=StaticRateResolver()).resolve()

    @staticmethod
    def assert_vat(resolver, expected):
        assert resolver.resolve().vat_rate == Decimal(expected)
