"""
Error taxonomy for the metrics registry.

Registration, lookup and mutation errors are raised to the caller.
Storage problems are reported as PersistenceFailure.
"""


class MetricsError(Exception):
    """Base exception for metrics registry operations"""

    pass


class KindConflict(MetricsError):
    """A name is already registered as a different metric kind"""

    pass


class LabelShapeConflict(MetricsError):
    """A name is already registered with a different label-name sequence"""

    pass


class NotFound(MetricsError, LookupError):
    """No family is registered under the requested name"""

    pass


class InvalidName(MetricsError, ValueError):
    """Metric, namespace or label name does not follow exposition naming rules"""

    pass


class InvalidValue(MetricsError, ValueError):
    """Sample value is not a finite number"""

    pass


class InvalidDelta(InvalidValue):
    """Increment delta is negative or not finite"""

    pass


class LabelArityMismatch(MetricsError, ValueError):
    """Number of label values differs from the number of label names"""

    pass


class MalformedSnapshot(MetricsError):
    """Snapshot content violates a registry invariant"""

    pass


class PersistenceFailure(MetricsError):
    """The persistence adapter could not load or durably store a snapshot"""

    pass
