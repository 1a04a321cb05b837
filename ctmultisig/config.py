"""
Multisig signing configuration.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, asdict
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    max_size_mb: int = 100
    backup_count: int = 5


@dataclass
class MultisigConfig:
    """
    Limits applied to signing ceremonies.

    Exceeding a limit is a local error raised before any nonce is made.
    """
    max_signers: int = 64
    max_proofs_per_ceremony: int = 256
    max_ring_size: int = 128

    log: LogConfig = field(default_factory=LogConfig)

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.max_signers < 1:
            errors.append("max_signers must be at least 1")

        if self.max_proofs_per_ceremony < 1:
            errors.append("max_proofs_per_ceremony must be at least 1")

        if self.max_ring_size < 1:
            errors.append("max_ring_size must be at least 1")

        if getattr(logging, self.log.level.upper(), None) is None:
            errors.append(f"Invalid log level: {self.log.level}")

        return errors

    def save(self, path: str) -> None:
        """Save configuration to file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.info(f"Configuration saved to {path}")

    @classmethod
    def load(cls, path: str) -> "MultisigConfig":
        """Load configuration from file."""
        with open(path, 'r') as f:
            data = json.load(f)

        defaults = cls()
        config = cls(
            max_signers=data.get("max_signers", defaults.max_signers),
            max_proofs_per_ceremony=data.get(
                "max_proofs_per_ceremony", defaults.max_proofs_per_ceremony,
            ),
            max_ring_size=data.get("max_ring_size", defaults.max_ring_size),
        )

        if "log" in data:
            config.log = LogConfig(**data["log"])

        logger.info(f"Configuration loaded from {path}")
        return config

    def to_dict(self) -> dict:
        """Export configuration as dictionary."""
        return {
            "max_signers": self.max_signers,
            "max_proofs_per_ceremony": self.max_proofs_per_ceremony,
            "max_ring_size": self.max_ring_size,
            "log": asdict(self.log),
        }


def setup_logging(config: LogConfig) -> None:
    """Configure logging based on config."""
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers = [logging.StreamHandler()]

    if config.file:
        from logging.handlers import RotatingFileHandler
        file_handler = RotatingFileHandler(
            config.file,
            maxBytes=config.max_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format=config.format,
        handlers=handlers,
    )
