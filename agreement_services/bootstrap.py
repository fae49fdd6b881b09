"""
agreement_services.bootstrap -- Wire the service from configuration.

Builds, in dependency order: logging, database engine and schema, document
storage and generator, workflow engine, caller-facing API.  This is the
only place where configuration is translated into running objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from flask import Flask
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from agreement_config import AgreementServiceConfig
from agreement_config.bridges import (
    build_capture_settings,
    build_signing_policy,
    log_level,
)
from agreement_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
)
from agreement_kernel.domain.booking import BookingProvider
from agreement_kernel.domain.clock import Clock
from agreement_kernel.logging_config import configure_logging, get_logger
from agreement_kernel.services.document_generator import (
    FilesystemDocumentStorage,
    PdfAgreementGenerator,
)
from agreement_kernel.services.signature_capture import SignatureCapture
from agreement_kernel.services.workflow_engine import AgreementWorkflowEngine
from agreement_services.api import AgreementApi
from agreement_services.http import create_app

logger = get_logger("bootstrap")


@dataclass
class AgreementService:
    """Everything a host process needs to serve agreements."""

    config: AgreementServiceConfig
    session_factory: sessionmaker[Session]
    storage: FilesystemDocumentStorage
    engine: AgreementWorkflowEngine
    api: AgreementApi

    def close(self) -> None:
        self.engine.close()


def ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)


def build_service(
    config: AgreementServiceConfig,
    booking_provider: BookingProvider,
    *,
    clock: Clock | None = None,
    create_schema: bool = True,
) -> AgreementService:
    configure_logging(level=log_level(config))

    storage_cfg = config.storage
    ensure_sqlite_directory(storage_cfg.database_url)
    engine = init_engine_from_url(
        storage_cfg.database_url,
        echo=storage_cfg.echo,
        pool_size=storage_cfg.pool_size,
        max_overflow=storage_cfg.max_overflow,
    )
    if create_schema:
        create_tables(engine)
    session_factory = get_session_factory()

    doc_cfg = config.document
    storage = FilesystemDocumentStorage(doc_cfg.storage_dir, doc_cfg.public_base_url)
    generator = PdfAgreementGenerator(storage, title=doc_cfg.title)

    workflow = AgreementWorkflowEngine(
        session_factory,
        booking_provider,
        generator,
        policy=build_signing_policy(config),
        clock=clock,
        capture=SignatureCapture(build_capture_settings(config)),
        document_timeout_seconds=doc_cfg.generation_timeout_seconds,
        filename_template=doc_cfg.filename_template,
        max_document_workers=doc_cfg.max_workers,
    )
    api = AgreementApi(workflow, booking_provider, storage)

    logger.info(
        "agreement_service_ready",
        extra={"config_source": config.source, "config_checksum": config.checksum},
    )
    return AgreementService(
        config=config,
        session_factory=session_factory,
        storage=storage,
        engine=workflow,
        api=api,
    )


def build_http_app(service: AgreementService, url_prefix: str = "") -> Flask:
    return create_app(
        service.api,
        url_prefix=url_prefix,
        max_upload_bytes=service.config.signature.max_upload_bytes,
    )
