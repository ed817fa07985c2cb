"""
Exceptions raised by the classification and filtering rules.
"""


class InvalidInputError(ValueError):
    """
    Raised for empty inputs, non-finite metric values, missing columns or
    out-of-range quantile, cutoff and alpha parameters.
    """

    pass
