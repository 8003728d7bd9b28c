"""Seed the default categories and tags.

Run with ``python -m illust_backend.seed``; rows are upserted by slug so the
command can be repeated safely.
"""
from __future__ import annotations

import logging
from typing import Iterable, Mapping, Sequence

import psycopg2.extras
from dotenv import load_dotenv
from psycopg2.extensions import connection as PgConnection

from .config import load_settings
from .db import Database

logger = logging.getLogger("seed")

CATEGORIES: Sequence[Mapping[str, str]] = (
    {"name": "Illustration", "slug": "illustration", "description": "General illustration work", "color": "#3B82F6"},
    {"name": "Character", "slug": "character", "description": "Character design", "color": "#EF4444"},
    {"name": "Landscape", "slug": "landscape", "description": "Landscapes and backgrounds", "color": "#10B981"},
    {"name": "Fantasy", "slug": "fantasy", "description": "Fantasy pieces", "color": "#8B5CF6"},
    {"name": "Anime", "slug": "anime", "description": "Anime style illustration", "color": "#F59E0B"},
    {"name": "Realistic", "slug": "realistic", "description": "Realistic rendering", "color": "#6B7280"},
    {"name": "Minimal", "slug": "minimal", "description": "Minimal design", "color": "#374151"},
    {"name": "Abstract", "slug": "abstract", "description": "Abstract work", "color": "#EC4899"},
)

TAGS: Sequence[Mapping[str, str]] = (
    {"name": "Cute", "slug": "cute"},
    {"name": "Cool", "slug": "cool"},
    {"name": "Beautiful", "slug": "beautiful"},
    {"name": "Dreamlike", "slug": "fantasy"},
    {"name": "Soothing", "slug": "healing"},
    {"name": "Pop", "slug": "pop"},
    {"name": "Simple", "slug": "simple"},
    {"name": "Colorful", "slug": "colorful"},
    {"name": "Monochrome", "slug": "monochrome"},
    {"name": "Watercolor", "slug": "watercolor"},
    {"name": "Digital", "slug": "digital"},
    {"name": "Hand-drawn", "slug": "hand-drawn"},
    {"name": "Background", "slug": "background"},
    {"name": "Portrait", "slug": "character"},
    {"name": "Animal", "slug": "animal"},
    {"name": "Plant", "slug": "plant"},
    {"name": "Building", "slug": "building"},
    {"name": "Nature", "slug": "nature"},
    {"name": "City", "slug": "city"},
    {"name": "Sky", "slug": "sky"},
)


def seed_categories(conn: PgConnection, categories: Iterable[Mapping[str, str]] = CATEGORIES) -> None:
    with conn.cursor() as cursor:
        psycopg2.extras.execute_values(
            cursor,
            """
            INSERT INTO categories (name, slug, description, color)
            VALUES %s
            ON CONFLICT (slug) DO NOTHING
            """,
            [(c["name"], c["slug"], c.get("description"), c.get("color")) for c in categories],
        )


def seed_tags(conn: PgConnection, tags: Iterable[Mapping[str, str]] = TAGS) -> None:
    with conn.cursor() as cursor:
        psycopg2.extras.execute_values(
            cursor,
            """
            INSERT INTO tags (name, slug)
            VALUES %s
            ON CONFLICT (slug) DO NOTHING
            """,
            [(t["name"], t["slug"]) for t in tags],
        )


def main() -> None:
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    database = Database.from_settings(load_settings())
    try:
        with database.connection() as conn:
            seed_categories(conn)
            seed_tags(conn)
        logger.info("Seeded %s categories and %s tags", len(CATEGORIES), len(TAGS))
    finally:
        database.close()


if __name__ == "__main__":
    main()
