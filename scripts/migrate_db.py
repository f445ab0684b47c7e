"""Create the gigflow tables and optionally seed the jobs catalogue."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import List

from sqlalchemy import inspect

from config.settings import DATABASE_URL
from gigflow.db import dispose_engine, get_engine
from gigflow.records import Job
from gigflow.services.application_repository import ApplicationRepository


def load_jobs(path: Path) -> List[Job]:
    """Read a JSON list of job objects."""
    with path.open("r", encoding="utf-8") as handle:
        return [Job.model_validate(item) for item in json.load(handle)]


def migrate(database_url: str, seed_path: Path | None = None) -> List[str]:
    repository = ApplicationRepository(database_url)
    repository.create_schema()
    if seed_path is not None:
        for job in load_jobs(seed_path):
            repository.upsert_job(job)
    tables = sorted(inspect(get_engine(database_url)).get_table_names())
    dispose_engine(database_url)
    return tables


def main() -> None:
    parser = argparse.ArgumentParser(description="Create database tables for the gigflow application store.")
    parser.add_argument(
        "--database-url",
        dest="database_url",
        default=DATABASE_URL,
        help="SQLAlchemy database URL (default: %(default)s)",
    )
    parser.add_argument(
        "--seed-jobs",
        dest="seed_path",
        type=Path,
        default=None,
        help="JSON file with jobs to upsert into the catalogue",
    )
    args = parser.parse_args()
    tables = migrate(args.database_url, args.seed_path)
    print(f"Database ready at {args.database_url}: {', '.join(tables)}")


if __name__ == "__main__":
    main()
