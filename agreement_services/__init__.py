"""
agreement_services -- Package init and public API.

Responsibility:
    The caller-facing layer over ``agreement_kernel``: identity-to-role
    authorization, response envelopes, the Flask adapter and the bootstrap
    that wires everything from ``agreement_config``.

Architecture position:
    Services -- outermost layer.

    Dependency direction:
        agreement_services/ -> agreement_config/  (allowed)
        agreement_services/ -> agreement_kernel/  (allowed)
        agreement_kernel/   -> agreement_services/ (FORBIDDEN)
"""

from agreement_services.api import AgreementApi, RequestContext
from agreement_services.bootstrap import AgreementService, build_http_app, build_service
from agreement_services.http import create_app

__all__ = [
    "AgreementApi",
    "AgreementService",
    "RequestContext",
    "build_http_app",
    "build_service",
    "create_app",
]
