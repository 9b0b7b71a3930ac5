"""
Exception taxonomy for basket pricing.

Construction-time and communication failures are fatal: nothing in the
package retries or swallows them.
"""


class PricingError(Exception):
    """Base class for all basket-pricing errors."""

    pass


class ConfigurationError(PricingError, ValueError):
    """Raised when model or option parameters are missing or invalid."""

    pass


class NumericalDegenerateError(PricingError, ValueError):
    """Raised when a call would divide by a zero step or index out of range."""

    pass


class CommunicationError(PricingError, RuntimeError):
    """Raised when a cluster message is lost, late, or malformed."""

    pass


class ClusterAborted(CommunicationError):
    """Raised on a worker when the master broadcasts an abort."""

    pass
