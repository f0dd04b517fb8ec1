import os
import configparser
from pathlib import Path


class Config:
    """Configuration manager for QuoteForge."""

    _instance = None

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize the configuration if not already initialized."""
        if self._initialized:
            return

        self._config_dir = Path(os.environ.get('QUOTEFORGE_CONFIG_DIR', 'config'))
        self._config_path = self._config_dir / 'settings.ini'
        self._config = configparser.ConfigParser(interpolation=None)

        if not self._config_dir.exists():
            self._config_dir.mkdir(parents=True)

        if self._config_path.exists():
            self._config.read(self._config_path)
        else:
            self._create_default_config()

        self._initialized = True

    def _create_default_config(self):
        """Create default configuration file."""
        self._config['DATABASE'] = {
            'url': 'sqlite:///quoteforge.db',
            'echo': 'False'
        }

        self._config['LOGGING'] = {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'directory': 'logs',
            'max_size_mb': '10',
            'backup_count': '5',
            'console_output': 'True'
        }

        # Ratios are decimals, e.g. 0.125 for 12.5% VAT
        self._config['PRICING'] = {
            'base_currency': 'FJD',
            'vat_rate': '0.125',
            'quote_validity_days': '14',
            'low_gm_threshold': '0.08',
            'critical_gm_threshold': '0.05',
            'smart_approval_floor': '0.15',
            'default_markup_percent': '0.25'
        }

        self._save_config()

    def _save_config(self):
        """Save configuration to file."""
        with open(self._config_path, 'w') as configfile:
            self._config.write(configfile)

    def get(self, section, key, default=None):
        """Get configuration value."""
        try:
            return self._config.get(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return default

    def get_int(self, section, key, default=None):
        """Get configuration value as integer."""
        try:
            return self._config.getint(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_float(self, section, key, default=None):
        """Get configuration value as float."""
        try:
            return self._config.getfloat(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_boolean(self, section, key, default=None):
        """Get configuration value as boolean."""
        try:
            return self._config.getboolean(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def set(self, section, key, value):
        """Set configuration value."""
        if not self._config.has_section(section):
            self._config.add_section(section)

        self._config.set(section, key, str(value))
        self._save_config()

    def get_db_url(self):
        """Get the SQLAlchemy database URL."""
        return os.environ.get('QUOTEFORGE_DATABASE_URL') or self.get(
            'DATABASE', 'url', 'sqlite:///quoteforge.db'
        )

    @property
    def log_config(self):
        """Get logging configuration."""
        return {
            'level': self.get('LOGGING', 'level', 'INFO'),
            'format': self.get('LOGGING', 'format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
            'directory': self.get('LOGGING', 'directory', 'logs'),
            'max_size_mb': self.get_int('LOGGING', 'max_size_mb', 10),
            'backup_count': self.get_int('LOGGING', 'backup_count', 5),
            'console_output': self.get_boolean('LOGGING', 'console_output', True)
        }

    @property
    def pricing_config(self):
        """Get pricing configuration.

        Values are returned as strings so callers can build exact Decimals.
        """
        return {
            'base_currency': self.get('PRICING', 'base_currency', 'FJD'),
            'vat_rate': self.get('PRICING', 'vat_rate', '0.125'),
            'quote_validity_days': self.get_int('PRICING', 'quote_validity_days', 14),
            'low_gm_threshold': self.get('PRICING', 'low_gm_threshold', '0.08'),
            'critical_gm_threshold': self.get('PRICING', 'critical_gm_threshold', '0.05'),
            'smart_approval_floor': self.get('PRICING', 'smart_approval_floor', '0.15'),
            'default_markup_percent': self.get('PRICING', 'default_markup_percent', '0.25')
        }


# Global config instance
config = Config()
