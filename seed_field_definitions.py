#!/usr/bin/env python3
"""One-off helper: upsert the default personnel field catalogue into the remote field registry."""
import argparse
import asyncio
import os
from typing import List

import remote_api
from field_categories import categorize, default_catalog


def plan_upserts(catalog: List[dict], existing: List[dict], only_missing: bool) -> List[dict]:
    """Definitions to write. With only_missing, keys already in the registry are left alone."""
    if not only_missing:
        return list(catalog)
    known = {d.get("key") for d in existing}
    return [d for d in catalog if d["key"] not in known]


async def seed(token: str, dry_run: bool, only_missing: bool) -> int:
    api = remote_api.get_api(token)
    try:
        existing = await api.field_definitions() if only_missing else []
        todo = plan_upserts(default_catalog(), existing, only_missing)
        print(f"{len(todo)} field definitions to upsert.")
        for d in todo:
            print(f"{d['key']:<32} {d['classification']:<13} {categorize(d)}  {d['label']}")
            if dry_run:
                continue
            await api.upsert_field_definition(d["key"], d["label"], d["classification"], d["selfEditable"])
        return len(todo)
    finally:
        await api.close()


def main():
    parser = argparse.ArgumentParser(description="Seed personnel field definitions")
    parser.add_argument("--url", default=os.environ.get("REMOTE_API_URL"), help="remote GraphQL endpoint")
    parser.add_argument("--token", default=os.environ.get("REMOTE_API_TOKEN"), required=False)
    parser.add_argument("--only-missing", action="store_true", help="skip keys already defined")
    parser.add_argument("--dry-run", action="store_true", help="print the plan without writing")
    args = parser.parse_args()

    if not args.token and not args.dry_run:
        raise SystemExit("Missing API token. Provide --token or set REMOTE_API_TOKEN.")
    if args.url:
        remote_api.API_URL = args.url

    try:
        n = asyncio.run(seed(args.token or "", args.dry_run, args.only_missing))
    except remote_api.RemoteAPIError as e:
        raise SystemExit(f"Seeding failed: {e.message}")
    print(f"Done. {'Planned' if args.dry_run else 'Upserted'} {n} definitions.")


if __name__ == "__main__":
    main()
