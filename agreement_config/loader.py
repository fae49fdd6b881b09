"""
Configuration Loader (``agreement_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into the typed ``agreement_config.schema``
dataclasses.  Runtime code should not call this directly; the single public
entry point is ``agreement_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Unknown sections and keys are rejected, so a typo never silently falls
  back to a default.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  effective configuration.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``ConfigError`` (wrapping ``yaml.YAMLError``).
* Unknown keys, wrong types or out-of-range values  -> ``ConfigError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from agreement_config.schema import (
    AgreementServiceConfig,
    DocumentConfig,
    LoggingConfig,
    SignatureConfig,
    StorageConfig,
    WorkflowConfig,
)

_SECTIONS: dict[str, type] = {
    "workflow": WorkflowConfig,
    "signature": SignatureConfig,
    "document": DocumentConfig,
    "storage": StorageConfig,
    "logging": LoggingConfig,
}

_ROLES = ("tenant", "landlord")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    """The configuration is malformed or fails validation."""

    code: str = "CONFIG_INVALID"

    def __init__(self, source: str, errors: list[str]):
        self.source = source
        self.errors = errors
        super().__init__(
            f"Invalid configuration {source}:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        ConfigError: if the file is not valid YAML or not a mapping.
    """
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(str(path), [f"malformed YAML: {exc}"]) from exc
    if not isinstance(data, dict):
        raise ConfigError(str(path), ["top level must be a mapping"])
    return data


def merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Section-wise merge: keys in ``override`` replace keys in ``base``."""
    merged = {name: dict(values or {}) for name, values in base.items()}
    for name, values in override.items():
        if isinstance(values, dict) and isinstance(merged.get(name), dict):
            merged[name].update(values)
        else:
            merged[name] = values
    return merged


def _coerce(section: str, key: str, value: Any, default: Any, errors: list[str]) -> Any:
    where = f"{section}.{key}"
    if isinstance(default, bool):
        if not isinstance(value, bool):
            errors.append(f"{where} must be true or false, got {value!r}")
        return value
    if isinstance(default, int) and not isinstance(default, bool):
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append(f"{where} must be an integer, got {value!r}")
        return value
    if isinstance(default, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            errors.append(f"{where} must be a number, got {value!r}")
            return value
        return float(value)
    if value is not None and not isinstance(value, str):
        errors.append(f"{where} must be a string, got {value!r}")
    return value


def parse_section(name: str, data: Any, errors: list[str]) -> Any:
    """Parse one section mapping into its dataclass, collecting errors."""
    cls = _SECTIONS[name]
    if data is None:
        return cls()
    if not isinstance(data, dict):
        errors.append(f"{name} must be a mapping")
        return cls()

    defaults = cls()
    known = {f.name for f in fields(cls)}
    values: dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            errors.append(f"{name}.{key} is not a recognised setting")
            continue
        values[key] = _coerce(name, key, value, getattr(defaults, key), errors)
    return cls(**values)


def validate(config: AgreementServiceConfig) -> list[str]:
    """Range and enum checks that do not depend on types alone."""
    errors: list[str] = []
    if config.workflow.first_signer not in _ROLES:
        errors.append(
            f"workflow.first_signer must be one of {_ROLES}, "
            f"got {config.workflow.first_signer!r}"
        )

    sig = config.signature
    for key in ("canvas_width", "canvas_height", "stroke_width", "max_upload_bytes"):
        value = getattr(sig, key)
        if isinstance(value, int) and value <= 0:
            errors.append(f"signature.{key} must be positive")
    if isinstance(sig.padding, int) and sig.padding < 0:
        errors.append("signature.padding must not be negative")
    if isinstance(sig.ink_threshold, int) and not 0 < sig.ink_threshold < 255:
        errors.append("signature.ink_threshold must be between 1 and 254")

    doc = config.document
    if isinstance(doc.generation_timeout_seconds, float) and doc.generation_timeout_seconds <= 0:
        errors.append("document.generation_timeout_seconds must be positive")
    if isinstance(doc.max_workers, int) and doc.max_workers < 1:
        errors.append("document.max_workers must be at least 1")
    if isinstance(doc.filename_template, str):
        try:
            doc.filename_template.format(booking_id="b", agreement_id="a", property_id="p")
        except (KeyError, IndexError, ValueError) as exc:
            errors.append(f"document.filename_template is invalid: {exc}")
    if not doc.storage_dir:
        errors.append("document.storage_dir must not be empty")

    if not config.storage.database_url:
        errors.append("storage.database_url must not be empty")

    if str(config.logging.level).upper() not in _LOG_LEVELS:
        errors.append(f"logging.level must be one of {_LOG_LEVELS}")
    return errors


def parse_config(data: dict[str, Any], source: str) -> AgreementServiceConfig:
    """
    Parse and validate a merged configuration mapping.

    Raises:
        ConfigError: listing every problem found.
    """
    errors: list[str] = []
    for name in data:
        if name not in _SECTIONS:
            errors.append(f"{name} is not a recognised section")

    sections = {
        name: parse_section(name, data.get(name), errors) for name in _SECTIONS
    }
    config = AgreementServiceConfig(
        **sections,
        source=source,
        checksum=compute_checksum(data),
    )
    errors.extend(validate(config))
    if errors:
        raise ConfigError(source, errors)
    return config


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
