class ExportError(Exception):
    """Base class for errors that abort a capture."""


class SnapshotError(ExportError):
    """The live body could not be copied into a detached snapshot."""


class EncodeError(ExportError):
    """The document encoder failed to produce a container."""


class FormulaError(ValueError):
    """A TeX expression is malformed and cannot be rendered."""
