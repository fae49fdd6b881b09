"""
Configuration Schema (``agreement_config.schema``).

Responsibility
--------------
Frozen dataclass definitions for every section of the agreement service
configuration.  The loader parses YAML into these types; bridges turn them
into kernel inputs.

Architecture position
---------------------
**Config layer** -- pure data definitions.  No I/O, no kernel imports.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class WorkflowConfig:
    """Signing order.  ``first_signer`` is ``tenant`` or ``landlord``."""

    first_signer: str = "tenant"
    allow_out_of_order: bool = False


@dataclass(frozen=True)
class SignatureConfig:
    canvas_width: int = 600
    canvas_height: int = 200
    stroke_width: int = 3
    padding: int = 4
    ink_threshold: int = 16
    max_upload_bytes: int = 2_000_000


@dataclass(frozen=True)
class DocumentConfig:
    storage_dir: str = "var/agreements"
    public_base_url: str | None = None
    generation_timeout_seconds: float = 30.0
    filename_template: str = "rental-agreement-{booking_id}.pdf"
    max_workers: int = 2
    title: str = "Rental Agreement"


@dataclass(frozen=True)
class StorageConfig:
    database_url: str = "sqlite:///var/agreements.db"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 10


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class AgreementServiceConfig:
    """The complete, validated configuration.

    ``checksum`` identifies the effective configuration (defaults merged
    with overrides) so logs can tie behaviour to a configuration version.
    """

    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    signature: SignatureConfig = field(default_factory=SignatureConfig)
    document: DocumentConfig = field(default_factory=DocumentConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    source: str = "<defaults>"
    checksum: str = ""
