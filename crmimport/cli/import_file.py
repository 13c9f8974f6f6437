"""Run a spreadsheet import from the command line.

Usage:
    crmimport-import FILE [--type opportunities] [--mapping COLUMN=FIELD ...]
                     [--suggested] [--owner EMAIL] [--customer ID]
                     [--stage STAGE] [--no-update] [--verbose]

Uploads FILE, saves the column mapping and executes the import against the
configured database, then prints the summary as JSON.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from crmimport.database import close_db, init_db
from crmimport.models import ImportType
from crmimport.services import ImportFileStorage, ImportService
from crmimport.services.import_service import (
    BeanieImportJobStore,
    BeanieRecordStore,
    ExecutionOptions,
    ImportServiceError,
    MappingEntry,
)


def parse_mapping(values: list[str]) -> list[MappingEntry]:
    """Parse ``COLUMN=FIELD`` arguments into mapping entries.

    Raises:
        ValueError: If an argument has no '='.
    """
    entries = []
    for value in values:
        column, sep, target = value.rpartition("=")
        if not sep or not column.strip() or not target.strip():
            raise ValueError(f"Invalid mapping '{value}', expected COLUMN=FIELD")
        entries.append(MappingEntry(source_column=column.strip(), target_field=target.strip()))
    return entries


async def run_import(args: argparse.Namespace) -> dict:
    """Upload, map and execute one file; return the summary as a dict."""
    path = Path(args.file)
    import_type = ImportType(args.type)

    await init_db()
    try:
        service = ImportService(
            job_store=BeanieImportJobStore(),
            record_store=BeanieRecordStore(),
            file_storage=ImportFileStorage(),
        )
        upload = await service.upload(import_type, path.name, path.read_bytes())
        job_id = str(upload.job.id)
        print(f"Uploaded {path.name} as import {job_id} ({upload.total_rows} rows)", file=sys.stderr)

        entries = parse_mapping(args.mapping or [])
        if args.suggested:
            mapped = {entry.target_field for entry in entries}
            used_columns = {entry.source_column for entry in entries}
            entries.extend(
                MappingEntry(s.source_column, s.target_field)
                for s in upload.suggested_mappings
                if s.target_field not in mapped and s.source_column not in used_columns
            )

        await service.save_mapping(import_type, job_id, entries)

        summary = await service.execute(
            import_type,
            job_id,
            ExecutionOptions(
                update_existing=not args.no_update,
                default_owner_email=args.owner,
                default_customer_id=args.customer,
                default_stage=args.stage,
            ),
        )
        return summary.model_dump(mode="json")
    finally:
        await close_db()


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Import a spreadsheet into the CRM")
    parser.add_argument("file", help="CSV or XLSX file to import")
    parser.add_argument(
        "--type", "-t",
        default=ImportType.OPPORTUNITIES.value,
        choices=[t.value for t in ImportType],
        help="Import type (default: opportunities)",
    )
    parser.add_argument(
        "--mapping", "-m",
        action="append",
        metavar="COLUMN=FIELD",
        help="Map a spreadsheet column to a target field (repeatable)",
    )
    parser.add_argument(
        "--suggested", "-s",
        action="store_true",
        help="Fill unmapped fields from the suggested mapping",
    )
    parser.add_argument("--owner", help="Default owner email")
    parser.add_argument("--customer", help="Default customer id")
    parser.add_argument("--stage", help="Default pipeline stage")
    parser.add_argument(
        "--no-update",
        action="store_true",
        help="Skip opportunities that already exist instead of updating them",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log progress")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not Path(args.file).is_file():
        print(f"Error: file not found: {args.file}", file=sys.stderr)
        return 1

    try:
        summary = asyncio.run(run_import(args))
    except (ImportServiceError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130

    print(json.dumps(summary, indent=2))
    return 0 if summary["failed_count"] == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
