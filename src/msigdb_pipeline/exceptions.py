"""Error taxonomy for the gene set build.

Every error aborts the build it is raised from; nothing is recovered or
retried. Messages name the violated invariant so the operator can act on them.
"""


class PipelineError(Exception):
    """Base class for all gene set build errors."""


class SourceDataShapeError(PipelineError):
    """An external table is missing expected tables, columns or rows."""


class ValidationError(PipelineError):
    """A post-transform sanity gate failed (row counts, identifier sets, ratios)."""


class ConsistencyError(PipelineError):
    """An invariant across subsets of a table was violated."""


class InvalidArgumentError(PipelineError, ValueError):
    """A caller passed an unsupported argument, such as an unknown species code."""
