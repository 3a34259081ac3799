"""
Score extraction contract
Types exchanged with the OCR collaborator that turns transcript files into subject scores
"""

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

from ..database.models import FileRecord, SubjectScore


@dataclass(frozen=True)
class FileScoreExtractionResult:
    """Extraction outcome for a single file"""
    file_id: str
    file_name: str
    success: bool
    scores: List[SubjectScore] = field(default_factory=list)
    document_annotation: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class BatchScoreExtractionResult:
    """Extraction outcomes for a batch of files plus the model that produced them"""
    results: List[FileScoreExtractionResult] = field(default_factory=list)
    ocr_model: Optional[str] = None

    @property
    def successful_files(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed_files(self) -> int:
        return len(self.results) - self.successful_files


class ScoreExtractor(Protocol):
    """OCR collaborator; produces {subject, score} pairs for each file"""

    async def extract_batch(self, files: Sequence[FileRecord]) -> BatchScoreExtractionResult:
        ...
