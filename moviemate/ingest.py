"""
This module is responsible for ingesting movies from the sample feed into the catalog.
It connects to the sample and catalog MongoDB collections, normalises the
documents and imports them one by one with the same duplicate handling as
the bulk import endpoint.
moviemate.ingest.py
"""
import argparse
import asyncio

from loguru import logger
from tqdm import tqdm

from moviemate.db import ensure_indexes, get_mongo_collections
from moviemate.movie_service import MovieService
from moviemate.sample_feed import normalize_sample_movie
from moviemate.schemas import Source


async def ingest_sample_movies(limit=5000, overwrite=False):
    sample_collection, movie_collection = get_mongo_collections()
    service = MovieService(movie_collection, sample_collection)
    await ensure_indexes(movie_collection)

    cursor = sample_collection.find({"title": {"$exists": True}}).limit(limit)
    total = min(limit, await sample_collection.count_documents({"title": {"$exists": True}}))

    summary = {"imported": 0, "skipped": 0, "failed": 0}
    with tqdm(total=total, desc="Importing movies") as progress:
        async for doc in cursor:
            outcome, error = await service.import_record(normalize_sample_movie(doc), Source.MFLIX, overwrite)
            summary[outcome] += 1
            if error:
                tqdm.write(f"Skipped invalid document {doc.get('title', 'Untitled')}: {error}")
            progress.update(1)

    logger.info(f"Ingest finished: {summary}")
    return summary


def main(argv=None):
    parser = argparse.ArgumentParser(description="Import sample_mflix movies into the catalog")
    parser.add_argument("--limit", type=int, default=5000, help="maximum documents to read")
    parser.add_argument("--overwrite", action="store_true", help="overwrite duplicates instead of skipping")
    args = parser.parse_args(argv)
    asyncio.run(ingest_sample_movies(limit=args.limit, overwrite=args.overwrite))


if __name__ == "__main__":
    main()
