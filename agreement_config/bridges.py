"""
Config-to-kernel bridges (``agreement_config.bridges``).

The kernel never imports ``agreement_config``; these functions translate
the validated configuration into the kernel's own types.
"""

from __future__ import annotations

from agreement_config.schema import AgreementServiceConfig
from agreement_kernel.domain.agreement import Role, SigningPolicy
from agreement_kernel.domain.signature import CaptureSettings


def build_signing_policy(config: AgreementServiceConfig) -> SigningPolicy:
    return SigningPolicy(
        first_signer=Role.parse(config.workflow.first_signer),
        allow_out_of_order=config.workflow.allow_out_of_order,
    )


def build_capture_settings(config: AgreementServiceConfig) -> CaptureSettings:
    sig = config.signature
    return CaptureSettings(
        canvas_width=sig.canvas_width,
        canvas_height=sig.canvas_height,
        stroke_width=sig.stroke_width,
        padding=sig.padding,
        ink_threshold=sig.ink_threshold,
        max_upload_bytes=sig.max_upload_bytes,
    )


def log_level(config: AgreementServiceConfig) -> str:
    return str(config.logging.level).upper()
