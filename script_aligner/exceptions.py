"""Error taxonomy for alignment and resegmentation."""


class AlignerError(Exception):
    """Base exception for script-aligner."""
    pass


class InputError(AlignerError):
    """No lines, no usable transcript units, or an empty recording."""
    pass


class AlignmentInfeasible(AlignerError):
    """Alignment produced zero accepted matches."""
    pass


class SegmentCountMismatch(AlignerError):
    """Windowed resegmentation: segment count differs from target line count."""

    def __init__(self, segments: int, target_lines: int, markers: int | None = None):
        self.segments = segments
        self.target_lines = target_lines
        self.markers = segments - 1 if markers is None else markers
        super().__init__(
            f"Segment count does not match unskipped lines: "
            f"segments={segments}, targetLines={target_lines} (markers={self.markers}). "
            f"Add or remove a marker, or toggle a skip flag, until they agree."
        )


class DecodeError(AlignerError):
    """Source recording is corrupt or in an unsupported format."""
    pass


class PersistenceError(AlignerError):
    """Storage failed while committing a unit of work."""
    pass
