"""
Fixed-length segmentation and the external segment-analysis surface.

A recording is cut into consecutive segments (5 seconds by default), each
encoded as 16-bit PCM and handed to an external analyzer as one batch.
The analyzer answers with one result per segment; this module only parses
and orders those results, it never interprets the match labels.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol, runtime_checkable

import numpy as np

from .wav import encode_pcm16

logger = logging.getLogger(__name__)

DEFAULT_SEGMENT_SECONDS = 5.0
MIN_SEGMENT_SECONDS = 0.5


@dataclass
class AudioSegment:
    """A contiguous slice of the input recording."""

    index: int
    start_sample: int
    samples: np.ndarray

    @property
    def sample_count(self) -> int:
        return int(self.samples.size)

    def to_pcm16(self) -> bytes:
        return encode_pcm16(self.samples)


@dataclass
class AnalysisResult:
    """Outcome of external analysis for one segment."""

    segment_index: int
    success: bool = False
    probable_matches: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fileIndex": self.segment_index,
            "success": self.success,
            "probableMatches": list(self.probable_matches),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisResult":
        """Parse an analyzer response, tolerating missing keys."""
        return cls(
            segment_index=int(data.get("fileIndex", 0)),
            success=bool(data.get("success", False)),
            probable_matches=[str(m) for m in data.get("probableMatches") or []],
        )


@runtime_checkable
class SegmentAnalyzer(Protocol):
    """
    External analyzer for PCM16 segments.

    Receives all segments of one recording in order and returns one
    result mapping per segment (keys ``fileIndex``, ``success``,
    ``probableMatches``).
    """

    async def analyze(self, segments: List[bytes]) -> List[Dict[str, Any]]:
        ...


def split_into_segments(
    samples,
    sample_rate: int,
    segment_seconds: float = DEFAULT_SEGMENT_SECONDS,
    min_seconds: float = MIN_SEGMENT_SECONDS,
) -> List[AudioSegment]:
    """
    Cut samples into consecutive fixed-length segments.

    The last segment may be shorter; it is dropped if shorter than
    min_seconds.

    Args:
        samples: Float samples in [-1, 1]
        sample_rate: Sample rate in Hz
        segment_seconds: Segment length in seconds
        min_seconds: Minimum length of a kept segment in seconds

    Returns:
        Segments in order, indexed from 0
    """
    if sample_rate <= 0 or segment_seconds <= 0:
        raise ValueError(
            f"sample_rate and segment_seconds must be positive, got: "
            f"{sample_rate}, {segment_seconds}"
        )

    data = np.asarray(samples, dtype=np.float64).ravel()
    segment_length = int(sample_rate * segment_seconds)
    min_length = int(sample_rate * min_seconds)

    segments: List[AudioSegment] = []
    for index, start in enumerate(range(0, data.size, segment_length)):
        chunk = data[start : start + segment_length]
        if chunk.size < min_length:
            logger.debug(f"Dropping segment {index}: {chunk.size} samples")
            continue
        segments.append(AudioSegment(index=index, start_sample=start, samples=chunk))

    logger.debug(f"Split {data.size} samples into {len(segments)} segments")
    return segments


def segment_offset(
    result: AnalysisResult,
    sample_rate: int,
    segment_seconds: float = DEFAULT_SEGMENT_SECONDS,
) -> float:
    """Start time (seconds) of the segment a result belongs to."""
    return int(sample_rate * segment_seconds) * result.segment_index / sample_rate


async def submit_segments(
    analyzer: SegmentAnalyzer,
    samples,
    sample_rate: int,
    segment_seconds: float = DEFAULT_SEGMENT_SECONDS,
) -> List[AnalysisResult]:
    """
    Segment a recording, send it to an analyzer and parse the results.

    Returns:
        Results ordered by segment index

    Raises:
        ValueError: The recording produced no segments
    """
    segments = split_into_segments(samples, sample_rate, segment_seconds)
    if not segments:
        raise ValueError("No audio segments created")

    logger.info(f"Submitting {len(segments)} segments for analysis")
    responses = await analyzer.analyze([segment.to_pcm16() for segment in segments])

    results = sorted(
        (AnalysisResult.from_dict(response) for response in responses),
        key=lambda r: r.segment_index,
    )
    matched = sum(1 for r in results if r.success)
    logger.info(f"Received {len(results)} results ({matched} successful)")
    return results
