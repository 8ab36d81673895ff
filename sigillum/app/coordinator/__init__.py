from .coordinator import CertificationCoordinator

__all__ = ["CertificationCoordinator"]
