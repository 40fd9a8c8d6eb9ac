"""
Best-effort metadata enrichment for import candidates.
"""

from bookshelf.core.concurrency import batch_map
from bookshelf.core.logging import get_logger
from bookshelf.services.csv_parser import BookCandidate
from bookshelf.services.external_apis import BookMetadata, MetadataEnricher

logger = get_logger(__name__)


def apply_metadata(candidate: BookCandidate, metadata: BookMetadata) -> None:
    """Fill enrichment fields that are still empty. Never overwrites file data."""
    if not candidate.external_id and metadata.open_library_id:
        candidate.external_id = metadata.open_library_id
    if not candidate.cover_url and metadata.cover_url:
        candidate.cover_url = metadata.cover_url
    if not candidate.description and metadata.description:
        candidate.description = metadata.description
    if not candidate.page_count and metadata.page_count:
        candidate.page_count = metadata.page_count


async def enrich_candidates(
    candidates: list[BookCandidate],
    enricher: MetadataEnricher,
    batch_size: int,
    batch_delay: float,
) -> list[BookCandidate]:
    """
    Enrich candidates in rate-limited batches.

    A failed lookup is logged and the candidate is passed through unchanged,
    so this never fails the import.
    """

    async def enrich_one(candidate: BookCandidate) -> BookCandidate:
        try:
            metadata = await enricher.lookup(candidate.title, candidate.author, candidate.isbn)
        except Exception as e:
            logger.warning(
                f"Failed to enrich '{candidate.title}' by {candidate.author}: {e}",
                extra={"extra_fields": {"row_number": candidate.row_number}},
            )
            return candidate

        if metadata:
            apply_metadata(candidate, metadata)
            logger.debug(f"Enriched '{candidate.title}' by {candidate.author}")
        return candidate

    logger.info(f"Starting enrichment for {len(candidates)} candidates")
    enriched = await batch_map(candidates, enrich_one, batch_size, batch_delay)
    logger.info(
        f"Completed enrichment for {len(enriched)} candidates",
        extra={
            "extra_fields": {
                "enriched": sum(1 for c in enriched if c.external_id),
                "batch_size": batch_size,
            }
        },
    )
    return enriched
