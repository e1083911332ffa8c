"""
Token counting and usage report parsing.

Turns the nested ``usage`` object of a realtime response into flat counts.
"""

from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional, Tuple

# field name -> path inside the usage report
USAGE_REPORT_PATHS: Dict[str, Tuple[str, ...]] = {
    "total_tokens": ("total_tokens",),
    "input_tokens": ("input_tokens",),
    "output_tokens": ("output_tokens",),
    "cached_tokens": ("input_token_details", "cached_tokens"),
    "input_text_tokens": ("input_token_details", "text_tokens"),
    "input_audio_tokens": ("input_token_details", "audio_tokens"),
    "cached_text_tokens": ("input_token_details", "cached_tokens_details", "text_tokens"),
    "cached_audio_tokens": ("input_token_details", "cached_tokens_details", "audio_tokens"),
    "output_text_tokens": ("output_token_details", "text_tokens"),
    "output_audio_tokens": ("output_token_details", "audio_tokens"),
}


def _count_at(report: Mapping[str, Any], path: Tuple[str, ...]) -> int:
    node: Any = report
    for key in path:
        if not isinstance(node, Mapping) or key not in node:
            return 0
        node = node[key]
    if isinstance(node, bool):
        return 0
    try:
        value = int(node)
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(value, 0)


@dataclass(frozen=True)
class TokenUsage:
    """Token counts of one usage report, or sums over many.

    All counts are non-negative integers. The six ``*_text_tokens`` /
    ``*_audio_tokens`` fields are the ones that are priced.
    """
    total_tokens: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cached_tokens: int = 0
    input_text_tokens: int = 0
    input_audio_tokens: int = 0
    cached_text_tokens: int = 0
    cached_audio_tokens: int = 0
    output_text_tokens: int = 0
    output_audio_tokens: int = 0

    @classmethod
    def from_report(cls, report: Optional[Mapping[str, Any]]) -> "TokenUsage":
        """Extract counts from a usage report, defaulting missing fields to 0."""
        if not isinstance(report, Mapping):
            return cls()
        return cls(**{name: _count_at(report, path) for name, path in USAGE_REPORT_PATHS.items()})

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        if not isinstance(other, TokenUsage):
            return NotImplemented
        return TokenUsage(**{
            f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)
        })

    def to_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
