class TravellerError(Exception):
    pass


class FormatError(TravellerError, ValueError):
    """Raised when external text cannot be parsed into the expected shape."""


class DiceNotationError(FormatError):
    pass


class ImportFormatError(FormatError):
    """Raised at the persistence boundary when an imported document is structurally invalid."""


class ChoiceResolutionError(TravellerError, ValueError):
    pass
