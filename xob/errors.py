"""Exceptions raised by the XOB decoder."""


class XobFormatError(ValueError):
    """The data is not a decodable XOB file (bad magic, missing chunk, ...)."""


class RegionTooSmallError(XobFormatError):
    """A LOD region cannot hold even its fixed-size index data."""

    def __init__(self, region_size: int, required: int, what: str = "index array"):
        super().__init__(
            f"Region of {region_size} bytes too small for {what} ({required} bytes)"
        )
        self.region_size = region_size
        self.required = required
