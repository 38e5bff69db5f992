"""
Exceptions raised by the panel pipeline.

Every error here is a data-quality fault that needs a fix in the inputs,
so all of them derive from ValueError and none is retried.
"""


class PanelDataError(ValueError):
    """Base class for pipeline data errors."""


class SchemaError(PanelDataError):
    """
    Raised when a dataset does not have the expected shape.

    Covers missing or unrenamable columns, unparseable numeric values,
    unsupported source formats and joins that would fan out.
    """


class DuplicateKeyError(SchemaError):
    """Raised when (entity, time) or (entity, time, indicator) keys repeat."""


class MissingAnchorError(PanelDataError):
    """Raised when strict deflation meets countries without a base-year index."""

    def __init__(self, countries, base_year):
        self.countries = sorted(countries)
        self.base_year = base_year
        listed = ", ".join(self.countries)
        super().__init__(
            f"No {base_year} price-index anchor for {len(self.countries)} "
            f"countries: {listed}. Their real values cannot be computed."
        )


class InsufficientDataError(PanelDataError):
    """Raised when a specification has too few usable rows to estimate."""

    def __init__(self, specification, message):
        self.specification = specification
        super().__init__(f"Specification {specification}: {message}")
