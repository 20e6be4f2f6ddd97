"""
Statement Source Registry

Where parsed bank transactions come from, and how each source's rows are read.

Supported Sources:
- STATEMENT_PDF: Lines extracted from an uploaded PDF statement
- BANK_FEED: Bank feed aggregator (Plaid style: outflows reported positive)
- CSV_IMPORT: Bank CSV export
- MANUAL: Manually keyed lines
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Any, List, Optional


class StatementSource(str, Enum):
    STATEMENT_PDF = "STATEMENT_PDF"
    BANK_FEED = "BANK_FEED"
    CSV_IMPORT = "CSV_IMPORT"
    MANUAL = "MANUAL"


@dataclass
class SourceConfig:
    """
    How rows from a source are interpreted.
    """
    source: StatementSource
    display_name: str
    enabled: bool
    invert_amount_sign: bool  # Source reports money out as positive
    trust_raw_type: bool      # Raw type hint is reliable enough to classify by

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.value,
            "display_name": self.display_name,
            "enabled": self.enabled,
            "invert_amount_sign": self.invert_amount_sign,
            "trust_raw_type": self.trust_raw_type,
        }


class SourceRegistry:
    """
    Central registry for statement sources.
    """

    _default_configs: Dict[StatementSource, SourceConfig] = {
        StatementSource.STATEMENT_PDF: SourceConfig(
            source=StatementSource.STATEMENT_PDF,
            display_name="PDF Bank Statement",
            enabled=True,
            invert_amount_sign=False,
            trust_raw_type=True,
        ),
        StatementSource.BANK_FEED: SourceConfig(
            source=StatementSource.BANK_FEED,
            display_name="Bank Feed",
            enabled=True,
            invert_amount_sign=True,
            trust_raw_type=False,
        ),
        StatementSource.CSV_IMPORT: SourceConfig(
            source=StatementSource.CSV_IMPORT,
            display_name="CSV Export",
            enabled=True,
            invert_amount_sign=False,
            trust_raw_type=False,
        ),
        StatementSource.MANUAL: SourceConfig(
            source=StatementSource.MANUAL,
            display_name="Manual Entries",
            enabled=True,
            invert_amount_sign=False,
            trust_raw_type=True,
        ),
    }

    def __init__(self):
        self._configs = {
            source: replace(cfg) for source, cfg in self._default_configs.items()
        }

    def get_config(self, source: StatementSource) -> Optional[SourceConfig]:
        return self._configs.get(source)

    def require_enabled(self, source: StatementSource) -> SourceConfig:
        """Config for an enabled source, ValueError otherwise."""
        cfg = self._configs.get(source)
        if cfg is None or not cfg.enabled:
            raise ValueError(f"Statement source {getattr(source, 'value', source)} is not enabled")
        return cfg

    def get_enabled_sources(self) -> List[StatementSource]:
        return [cfg.source for cfg in self._configs.values() if cfg.enabled]

    def update_config(self, source: StatementSource, **kwargs):
        """Update configuration for a source."""
        if source not in self._configs:
            return
        self._configs[source] = replace(self._configs[source], **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            source.value: cfg.to_dict()
            for source, cfg in self._configs.items()
        }


# Global registry instance
source_registry = SourceRegistry()
