"""
Log Records Processor
Parses, analyses and classifies log lines in parallel chunks and merges the
per-chunk finding groups
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from wafwatch.core.config import ChunkFailurePolicy
from wafwatch.models.schemas import FindingGroups
from wafwatch.pipeline.analyzer import ThreatAnalyzer
from wafwatch.pipeline.classify import ClassificationEngine
from wafwatch.pipeline.ingest import parse_log_lines
from wafwatch.utils.helpers import chunk_list
from wafwatch.utils.logger import get_logger


class ChunkProcessingError(RuntimeError):
    def __init__(self, chunk_index: int, cause: BaseException):
        super().__init__(f"Chunk {chunk_index} failed: {cause!r}")
        self.chunk_index = chunk_index
        self.cause = cause


@dataclass
class ChunkResult:
    chunk_index: int
    groups: FindingGroups
    lines: int = 0
    skipped: int = 0
    unclassified: int = 0


@dataclass
class ProcessingResult:
    groups: FindingGroups = field(default_factory=FindingGroups)
    total_lines: int = 0
    chunks: int = 0
    skipped_lines: int = 0
    unclassified_findings: int = 0
    failed_chunks: List[int] = field(default_factory=list)


def process_chunk(
    chunk_index: int,
    lines: Sequence[str],
    analyzer: Optional[ThreatAnalyzer] = None,
    logger: Optional[logging.Logger] = None,
) -> ChunkResult:
    """Parse -> analyse -> classify for one chunk. Owns nothing shared."""
    logger = logger or get_logger("processor")
    parsed = parse_log_lines(lines, logger=logger)
    classified = ClassificationEngine(analyzer=analyzer, logger=logger).classify(parsed.findings)
    return ChunkResult(
        chunk_index=chunk_index,
        groups=classified.groups,
        lines=len(lines),
        skipped=parsed.skipped,
        unclassified=len(classified.unclassified),
    )


class LogRecordsProcessor:
    def __init__(
        self,
        chunk_size: int = 500,
        max_parallel_chunks: int = 2,
        failure_policy: ChunkFailurePolicy = ChunkFailurePolicy.ABORT,
        analyzer: Optional[ThreatAnalyzer] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if chunk_size < 1 or max_parallel_chunks < 1:
            raise ValueError("chunk_size and max_parallel_chunks must be positive")
        self.chunk_size = chunk_size
        self.max_parallel_chunks = max_parallel_chunks
        self.failure_policy = ChunkFailurePolicy(failure_policy)
        self.logger = logger or get_logger("processor")
        self.analyzer = analyzer or ThreatAnalyzer(logger=self.logger.getChild("analyzer"))

    @classmethod
    def from_settings(cls, settings, logger: Optional[logging.Logger] = None) -> "LogRecordsProcessor":
        return cls(
            chunk_size=settings.chunk_size,
            max_parallel_chunks=settings.max_parallel_chunks,
            failure_policy=settings.chunk_failure_policy,
            logger=logger,
        )

    def _run_chunk(self, chunk_index: int, lines: Sequence[str]) -> ChunkResult:
        try:
            return process_chunk(chunk_index, lines, analyzer=self.analyzer, logger=self.logger)
        except Exception as e:
            raise ChunkProcessingError(chunk_index, e) from e

    def process(self, lines: Iterable[str]) -> ProcessingResult:
        all_lines = [line for line in lines if line and line.strip()]
        chunks = chunk_list(all_lines, self.chunk_size)
        result = ProcessingResult(total_lines=len(all_lines), chunks=len(chunks))

        if not chunks:
            self.logger.info("No log records to process")
            return result

        self.logger.info(
            f"Processing {len(all_lines)} log records in {len(chunks)} chunks "
            f"({self.max_parallel_chunks} at a time)"
        )

        completed: Dict[int, ChunkResult] = {}
        with ThreadPoolExecutor(max_workers=self.max_parallel_chunks) as executor:
            futures = {
                executor.submit(self._run_chunk, index, chunk): index
                for index, chunk in enumerate(chunks)
            }
            for future in as_completed(futures):
                try:
                    chunk_result = future.result()
                except ChunkProcessingError as e:
                    if self.failure_policy is ChunkFailurePolicy.ABORT:
                        self.logger.error(f"Aborting run: {e}")
                        for pending in futures:
                            pending.cancel()
                        raise
                    self.logger.error(f"Skipping failed chunk: {e}")
                    result.failed_chunks.append(e.chunk_index)
                    continue

                completed[chunk_result.chunk_index] = chunk_result
                self.logger.debug(
                    f"Chunk {chunk_result.chunk_index} done: {chunk_result.groups.total()} findings"
                )

        # merge in chunk order so the result does not depend on completion order
        ordered = [completed[index] for index in sorted(completed)]
        result.groups = FindingGroups.merge_all(chunk.groups for chunk in ordered)
        result.skipped_lines = sum(chunk.skipped for chunk in ordered)
        result.unclassified_findings = sum(chunk.unclassified for chunk in ordered)
        result.failed_chunks.sort()

        self.logger.info(
            f"Processed {result.total_lines} log records: {result.groups.total()} findings, "
            f"{result.skipped_lines} malformed, {result.unclassified_findings} unclassified"
        )
        return result


def process_log_records(lines: Iterable[str], settings) -> FindingGroups:
    return LogRecordsProcessor.from_settings(settings).process(lines).groups
