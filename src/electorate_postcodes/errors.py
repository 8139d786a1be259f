"""Domain errors and failure typing."""


class CorrespondenceError(Exception):
    """Base class for correspondence pipeline failures."""

    error_code = "CORRESPONDENCE_ERROR"


class InputError(CorrespondenceError, ValueError):
    """Raised when an input file is unparsable or missing required columns."""

    error_code = "INPUT_ERROR"


class CRSMismatchError(InputError):
    """Raised when geocodes and districts are not in the same reference frame."""

    error_code = "CRS_MISMATCH"


class OverlapError(CorrespondenceError, ValueError):
    """Raised when a point falls inside several districts under the reject policy."""

    error_code = "OVERLAP_ERROR"


class PartitionError(CorrespondenceError, RuntimeError):
    """Raised when one partition of the parallel assignment fails."""

    error_code = "PARTITION_ERROR"

    def __init__(self, partition: str, cause: BaseException):
        self.partition = partition
        self.cause = cause
        super().__init__(
            f"Assignment failed for partition {partition!r}: "
            f"{type(cause).__name__}: {cause}"
        )


class DistrictExcludedWarning(UserWarning):
    """Issued when a district geometry cannot be repaired and is dropped."""
