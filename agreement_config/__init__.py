"""
agreement_config -- single public entrypoint for service configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    directly.

Architecture position:
    Configuration.  This package sits above ``agreement_kernel`` and below
    ``agreement_services``.  The kernel MUST NEVER import from
    ``agreement_config``; ``bridges`` translates configuration into
    kernel-compatible inputs.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Every key has a packaged default (``defaults.yaml``); a deployment file
      only overrides.
    - Validation runs before a config is returned; unknown keys are errors.

Failure modes:
    - ``FileNotFoundError`` -- the requested file does not exist.
    - ``ConfigError`` -- malformed YAML or validation failures.
"""

from __future__ import annotations

import logging
from pathlib import Path

from agreement_config.loader import ConfigError, load_yaml_file, merge, parse_config
from agreement_config.schema import (
    AgreementServiceConfig,
    DocumentConfig,
    LoggingConfig,
    SignatureConfig,
    StorageConfig,
    WorkflowConfig,
)

_logger = logging.getLogger("agreement_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: str | Path | None = None) -> AgreementServiceConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: Deployment YAML whose keys override the packaged defaults.
            When omitted, the defaults are returned as-is.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ConfigError: If the merged configuration is invalid.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    source = str(DEFAULTS_PATH)
    if path is not None:
        data = merge(data, load_yaml_file(Path(path)))
        source = str(path)

    config = parse_config(data, source)
    _logger.info(
        "AGREEMENT_CONFIG_TRACE",
        extra={
            "trace_type": "AGREEMENT_CONFIG_TRACE",
            "source": config.source,
            "checksum": config.checksum,
            "first_signer": config.workflow.first_signer,
            "allow_out_of_order": config.workflow.allow_out_of_order,
        },
    )
    return config


__all__ = [
    "AgreementServiceConfig",
    "ConfigError",
    "DocumentConfig",
    "LoggingConfig",
    "SignatureConfig",
    "StorageConfig",
    "WorkflowConfig",
    "get_active_config",
]
