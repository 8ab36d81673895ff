"""
Request-scoped dependency providers shared by the routers.
"""

import hmac
from typing import Annotated, Optional

from fastapi import Depends, Header, Request

from sigillum.app.config import QrPosition, QrSize
from sigillum.app.coordinator import CertificationCoordinator
from sigillum.app.errors import Unauthorized
from sigillum.app.services.qr_stamp import StampOptions


def get_coordinator(request: Request) -> CertificationCoordinator:
    """Return the coordinator wired during application startup."""
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise RuntimeError("coordinator not initialized")
    return coordinator


CoordinatorDep = Annotated[CertificationCoordinator, Depends(get_coordinator)]


def require_admin(
    coordinator: CoordinatorDep,
    authorization: Annotated[
        Optional[str],
        Header(description="Bearer <admin token>"),
    ] = None,
) -> None:
    """
    Check the shared admin credential.

    Every admin request is rejected while no token is configured.
    """
    expected = coordinator.settings.admin_token
    provided = (authorization or "").strip()
    if provided.startswith("Bearer "):
        provided = provided[len("Bearer "):].strip()

    if (
        expected is None
        or not provided
        or not hmac.compare_digest(
            provided.encode("utf-8"),
            expected.get_secret_value().encode("utf-8"),
        )
    ):
        raise Unauthorized("Unauthorized.")


def stamp_options(
    coordinator: CertificationCoordinator,
    qr_size: Optional[QrSize],
    qr_position: Optional[QrPosition],
) -> Optional[StampOptions]:
    """Merge per-request overrides with the deployment defaults."""
    if qr_size is None and qr_position is None:
        return None
    settings = coordinator.settings
    return StampOptions(
        size=qr_size or settings.qr_size,
        position=qr_position or settings.qr_position,
    )
