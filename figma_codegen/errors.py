"""Error taxonomy for the generation engine.

Fatal errors (MalformedDocument, LayoutInvariantViolation, EmissionMismatch,
AssetFetchError for required assets) abort a run with nothing written.
Per-node problems are recorded as warnings on the ValidationReport instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .assets.pipeline import AssetWarning
    from .spec.spec_validator import ValidationReport


class CodegenError(Exception):
    """Base class for engine errors.

    Carries the report accumulated up to the point of failure so callers
    can surface every warning alongside the fatal error.
    """

    def __init__(self, message: str, report: Optional["ValidationReport"] = None):
        super().__init__(message)
        self.report = report


class MalformedDocument(CodegenError):
    """Raised when the raw design tree is structurally invalid."""


class LayoutInvariantViolation(CodegenError):
    """Raised when layout inference cannot honor a positioning invariant."""


class EmissionMismatch(CodegenError):
    """Raised when the validation gate rejects the emitted artifacts."""


class AssetFetchError(CodegenError):
    """Raised when an image payload could not be fetched or decoded.

    Within the asset pipeline this is caught per asset and turned into a
    placeholder; it only escapes a run for assets marked required, and then
    carries the warnings for every optional asset that failed in the same
    pass.
    """

    def __init__(
        self,
        message: str,
        reference: str = "",
        attempts: int = 0,
        report: Optional["ValidationReport"] = None,
        asset_warnings: Optional[List["AssetWarning"]] = None,
    ):
        super().__init__(message, report)
        self.reference = reference
        self.attempts = attempts
        self.asset_warnings = list(asset_warnings or ())


class VocabularyError(CodegenError):
    """Raised when the token vocabulary configuration is invalid."""


class UnresolvedToken(Warning):
    """Warning category for style values with no token within tolerance.

    Never raised by the engine; used to tag report entries.
    """
