import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

ENV_PREFIX = "DUET_"

LAYOUT_RECOVERY_MIN_CHARS = 200
MIN_COVERAGE_RATIO = 0.75


class SessionConfig(BaseModel):
    """Tunables for a review session. Delays are in milliseconds."""

    model_config = ConfigDict(frozen=True)

    text_debounce_ms: int = Field(300, ge=0, description="Quiet period after a text edit before a pass runs.")
    issue_debounce_ms: int = Field(150, ge=0, description="Quiet period after the issue list changes.")
    layout_recovery_min_chars: int = Field(
        LAYOUT_RECOVERY_MIN_CHARS,
        ge=0,
        description="Text longer than this with no blank lines is split on single newlines.",
    )
    min_coverage_ratio: float = Field(
        MIN_COVERAGE_RATIO, ge=0.0, le=1.0, description="Share of source characters an alignment reply must keep."
    )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SessionConfig":
        """Reads DUET_<FIELD> overrides, e.g. DUET_TEXT_DEBOUNCE_MS=500."""
        environ = os.environ if environ is None else environ
        overrides = {}
        for name in cls.model_fields:
            value = environ.get(ENV_PREFIX + name.upper())
            if value is not None and value.strip():
                overrides[name] = value.strip()
        return cls.model_validate(overrides)
