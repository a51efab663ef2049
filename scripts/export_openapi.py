#!/usr/bin/env python3

"""Write the gateway's OpenAPI document to disk for client generation."""

import argparse
import json
from pathlib import Path

from objgw.main import create_app


def export_openapi(target_dir: Path, *, filename: str = "openapi.json") -> Path:
    """Render the schema under target_dir and return the written path."""
    schema = create_app().openapi()

    target_dir.mkdir(parents=True, exist_ok=True)
    output_path = target_dir / filename
    output_path.write_text(
        json.dumps(schema, ensure_ascii=False, indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )
    return output_path


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Export the object storage gateway OpenAPI schema."
    )
    parser.add_argument(
        "target_dir",
        type=Path,
        help="Directory that receives the schema (created if missing).",
    )
    parser.add_argument("--filename", default="openapi.json")
    args = parser.parse_args()

    output_path = export_openapi(args.target_dir.resolve(), filename=args.filename)
    print(f"OpenAPI schema exported to {output_path}")


if __name__ == "__main__":
    main()
