#!/usr/bin/env python3
"""Abort multipart uploads left open on the backend.

A gateway process that dies between initiating and completing an upload
leaves the upload open, and its parts keep consuming storage until a bucket
expiration policy removes them.

Usage:
  .venv/bin/python scripts/cleanup_multipart.py --dry-run
  .venv/bin/python scripts/cleanup_multipart.py --hours 24 --prefix uploads/

By default aborts uploads initiated more than 24 hours ago.
"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime, timedelta, timezone

from objgw.common.config import get_settings
from objgw.infra.storage.client import StorageClient, StorageError
from objgw.services.base import build_storage_client

logger = logging.getLogger("objgw.cleanup")


def cleanup_multipart_uploads(
    storage: StorageClient,
    *,
    bucket: str,
    older_than: timedelta,
    prefix: str | None = None,
    dry_run: bool = False,
    now: datetime | None = None,
) -> int:
    threshold = (now or datetime.now(timezone.utc)) - older_than
    stale = [
        upload
        for upload in storage.list_multipart_uploads(bucket=bucket, prefix=prefix)
        if upload.initiated_at is not None and upload.initiated_at <= threshold
    ]
    if dry_run:
        return len(stale)

    aborted = 0
    for upload in stale:
        try:
            storage.abort_multipart_upload(
                bucket=bucket,
                object_key=upload.object_key,
                upload_id=upload.upload_id,
            )
        except StorageError as exc:
            logger.warning(
                "stale_upload_abort_failed key=%s upload_id=%s error=%s",
                upload.object_key,
                upload.upload_id,
                exc,
            )
            continue
        logger.info(
            "stale_upload_aborted key=%s upload_id=%s initiated_at=%s",
            upload.object_key,
            upload.upload_id,
            upload.initiated_at,
        )
        aborted += 1
    return aborted


def main() -> None:
    parser = argparse.ArgumentParser(description="Abort stale multipart uploads")
    parser.add_argument(
        "--hours",
        type=int,
        default=24,
        help="Abort uploads initiated more than N hours ago (default: 24)",
    )
    parser.add_argument("--prefix", default=None, help="Only consider keys under this prefix")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print how many uploads would be aborted",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    storage = build_storage_client(settings)
    count = cleanup_multipart_uploads(
        storage,
        bucket=settings.S3_BUCKET or "",
        older_than=timedelta(hours=args.hours),
        prefix=args.prefix,
        dry_run=args.dry_run,
    )
    if args.dry_run:
        print(f"[DRY-RUN] {count} uploads would be aborted")
    else:
        print(f"Aborted {count} uploads")


if __name__ == "__main__":
    main()
