from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ipdocs.models.package import PackageVersion


class ErrorCode(StrEnum):
    FETCH_FAILED = "FETCH_FAILED"
    METADATA_INVALID = "METADATA_INVALID"
    CYCLE_DETECTED = "CYCLE_DETECTED"
    STORE_FAILED = "STORE_FAILED"
    GENERATION_FAILED = "GENERATION_FAILED"


def format_chain(chain: Sequence[PackageVersion]) -> str:
    """Render a build chain as ``a@1.0 → b@2.0``."""
    return " → ".join(str(pv) for pv in chain)


class IpdocsError(Exception):
    """Base class for every expected build failure.

    Collaborators raise a subclass at their boundary. The recursive builder
    attaches the active chain; for a dependency the error is logged and the
    link omitted, for the root it reaches the CLI and sets the exit status.
    """

    code: ErrorCode

    def __init__(
        self,
        message: str,
        suggestion: str = "",
        chain: Sequence[PackageVersion] = (),
    ) -> None:
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion
        self.chain: tuple[PackageVersion, ...] = tuple(chain)

    def __str__(self) -> str:
        if self.chain:
            return f"{self.message} (chain: {format_chain(self.chain)})"
        return self.message

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "chain": format_chain(self.chain),
            }
        }


class FetchError(IpdocsError):
    code = ErrorCode.FETCH_FAILED


class MetadataError(IpdocsError):
    code = ErrorCode.METADATA_INVALID


class CycleDetected(IpdocsError):
    code = ErrorCode.CYCLE_DETECTED

    @property
    def repeated(self) -> PackageVersion | None:
        """The package whose second visit triggered the error."""
        return self.chain[-1] if self.chain else None


class StoreError(IpdocsError):
    code = ErrorCode.STORE_FAILED


class GenerationError(IpdocsError):
    code = ErrorCode.GENERATION_FAILED
