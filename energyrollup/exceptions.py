class RollupError(Exception): ...


class InvalidTimezone(RollupError, ValueError): ...


class CounterReadFailure(RollupError): ...


class VersionConflict(RollupError): ...


class MergeConflict(RollupError): ...


class DocumentError(RollupError): ...


class TenantTimeout(RollupError): ...


def require(condition: bool, message: str, exc: type[RollupError] = RollupError):
    """Raise the given exception if condition is False."""
    if not condition:
        raise exc(message)
