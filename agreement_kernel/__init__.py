"""
Agreement Kernel

The rental-agreement signing workflow of the property-rental platform:
- Two-party (tenant/landlord) signing state machine with configurable order
- Per-booking serialized, compare-and-swap protected writes
- Immutable signature artifacts and audit history
- Final PDF agreement generation with retry without re-signing
"""

__version__ = "0.1.0"
