class OpportunityError(Exception):
    pass


class InvalidInputError(OpportunityError, ValueError):
    """Malformed or insufficient input (e.g. a series with fewer than 2 points)."""


class InvalidArgumentError(OpportunityError, ValueError):
    """Bad threshold/window values; rejected before any computation."""


class MissingDataError(OpportunityError, LookupError):
    """A referenced query or score does not exist."""
