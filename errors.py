class CalculationError(ValueError):
    """Base class for calculator failures; the message is shown to the user."""


class InvalidParameters(CalculationError):
    pass


class UnknownCalculationType(CalculationError):
    pass


class MalformedDateInput(CalculationError):
    pass
