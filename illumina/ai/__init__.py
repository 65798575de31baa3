"""Recovery of structured data from generative model output."""

from illumina.ai.errors import ExtractionError, ExtractionFailedError, NoJsonFoundError
from illumina.ai.extractor import Extraction, ExtractionOutcome, ResilientJSONExtractor

__all__ = ["Extraction", "ExtractionError", "ExtractionFailedError", "ExtractionOutcome", "NoJsonFoundError", "ResilientJSONExtractor"]
