"""
Run configuration for the correspondence pipeline.

Module-level constants hold the defaults used by the processing scripts;
``CorrespondenceConfig`` gathers them into one value that is passed
explicitly to each stage.
"""

from dataclasses import asdict, dataclass

# Reference frame of both the G-NAF geocodes and the district boundaries (GDA2020)
DEFAULT_CRS = "EPSG:7844"

# Region filter applied to the address table
DEFAULT_STATE = "NSW"

# Parallel assignment
DEFAULT_WORKERS = 8
DEFAULT_CHUNK_SIZE = 50_000

# Decimal places kept when coordinates are used as join keys (~1cm)
DEFAULT_COORDINATE_PRECISION = 7

# Simplification tolerance (degrees) for the exported postal areas
DEFAULT_SIMPLIFY_TOLERANCE = 0.0005

# Attribute names in the boundary datasets
DEFAULT_DISTRICT_NAME_COLUMN = "district"
DEFAULT_POSTCODE_COLUMN = "POA_CODE21"

DEFAULT_UNASSIGNED_LABEL = "Unassigned"

OVERLAP_POLICIES = ("first", "reject", "smallest")
PARTITION_STRATEGIES = ("postcode", "chunk")
MISSING_POLICIES = ("drop", "raise")
UNASSIGNED_POLICIES = ("drop", "sentinel")
CONFLICT_POLICIES = ("keep", "drop")


@dataclass(frozen=True)
class CorrespondenceConfig:
    """
    Settings for one correspondence run.

    Parameters
    ----------
    crs : str
        Reference frame the address coordinates are expressed in.
    state : str or None
        Keep only addresses in this state. ``None`` disables the filter.
    workers : int
        Size of the process pool used for assignment. ``1`` runs inline.
    partition_by : str
        ``"postcode"`` or ``"chunk"``.
    chunk_size : int
        Geocodes per partition when ``partition_by == "chunk"``.
    overlap_policy : str
        How a point inside several districts is resolved:
        ``"first"``, ``"reject"`` or ``"smallest"``.
    missing_policy : str
        ``"drop"`` or ``"raise"`` for addresses with no postcode/coordinates.
    unassigned_policy : str
        ``"drop"`` or ``"sentinel"`` for addresses outside every district.
    conflict_policy : str
        ``"keep"`` or ``"drop"`` for coordinates shared by several postcodes.
    coordinate_precision : int
        Decimal places used to quantise coordinates for joining.
    """

    crs: str = DEFAULT_CRS
    state: str | None = DEFAULT_STATE
    workers: int = DEFAULT_WORKERS
    partition_by: str = "postcode"
    chunk_size: int = DEFAULT_CHUNK_SIZE
    overlap_policy: str = "first"
    missing_policy: str = "drop"
    unassigned_policy: str = "drop"
    unassigned_label: str = DEFAULT_UNASSIGNED_LABEL
    conflict_policy: str = "keep"
    coordinate_precision: int = DEFAULT_COORDINATE_PRECISION
    simplify_tolerance: float = DEFAULT_SIMPLIFY_TOLERANCE
    district_name_column: str = DEFAULT_DISTRICT_NAME_COLUMN
    postcode_column: str = DEFAULT_POSTCODE_COLUMN

    def __post_init__(self) -> None:
        choices = {
            "overlap_policy": OVERLAP_POLICIES,
            "partition_by": PARTITION_STRATEGIES,
            "missing_policy": MISSING_POLICIES,
            "unassigned_policy": UNASSIGNED_POLICIES,
            "conflict_policy": CONFLICT_POLICIES,
        }
        for field, allowed in choices.items():
            value = getattr(self, field)
            if value not in allowed:
                raise ValueError(f"{field} must be one of {allowed}, got {value!r}")
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {self.chunk_size}")
        if self.coordinate_precision < 0:
            raise ValueError("coordinate_precision must be non-negative")

    def to_dict(self) -> dict:
        """Plain dict form, used for cache keys and the run summary."""
        return asdict(self)
