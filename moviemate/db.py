"""
This module handles the connection to the MongoDB database.
It provides functions to get the catalog and sample feed collections
and to create the indexes the catalog queries rely on.
moviemate.db.py
"""
import os
from dotenv import load_dotenv
from loguru import logger
from pymongo import ASCENDING, DESCENDING, AsyncMongoClient

load_dotenv()

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
DB_NAME = os.getenv("DB_NAME", "moviemate")
MOVIE_COLLECTION = os.getenv("MOVIE_COLLECTION_NAME", "movies")
SAMPLE_DB_NAME = os.getenv("SAMPLE_DB_NAME", "sample_mflix")
SAMPLE_COLLECTION = os.getenv("SAMPLE_COLLECTION_NAME", "movies")

_client = AsyncMongoClient(MONGO_URI, tz_aware=True)
_db = _client[DB_NAME]

MOVIE_INDEXES = [
    [("title", ASCENDING)],
    [("director", ASCENDING)],
    [("year", DESCENDING)],
    [("genres", ASCENDING)],
    [("imdb.rating", DESCENDING)],
    [("createdAt", DESCENDING)],
    [("viewCount", DESCENDING)],
    [("favorites", DESCENDING)],
    [("status", ASCENDING)],
    [("genres", ASCENDING), ("year", DESCENDING)],
    [("imdb.rating", DESCENDING), ("year", DESCENDING)],
    [("status", ASCENDING), ("createdAt", DESCENDING)],
]


def get_movie_collection():
    return _db[MOVIE_COLLECTION]


def get_sample_collection():
    return _client[SAMPLE_DB_NAME][SAMPLE_COLLECTION]


def get_mongo_collections():
    return get_sample_collection(), get_movie_collection()


async def ensure_indexes(collection=None):
    collection = collection if collection is not None else get_movie_collection()
    for keys in MOVIE_INDEXES:
        await collection.create_index(keys)
    logger.info(f"Ensured {len(MOVIE_INDEXES)} indexes on '{collection.name}'")


async def close_client():
    await _client.close()
