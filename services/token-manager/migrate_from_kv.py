#!/usr/bin/env python3
"""
Migration script to move tokens and sessions from Cloudflare KV to SQL.

This script:
1. Lists every ``token:`` key in the tokens namespace and copies the records
2. Lists every ``session:`` key in the sessions namespace and copies the
   sessions that have not expired
3. Creates missing users on the way (placeholder password ``migrated``,
   replaced on the user's next login)
4. Provides migration status report

Records whose id already exists in the database are skipped, so the script
can be re-run safely.

Usage:
    python migrate_from_kv.py --dry-run  # Read KV without writing
    python migrate_from_kv.py            # Execute migration
"""

import argparse
import asyncio
import json
import os
import sys
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from app.database import SessionLocal, init_db
from app.domain.entities import (
    LoginSession,
    Token,
    User,
    UserRole,
    parse_datetime,
    utcnow,
)
from app.infrastructure.cloudflare_kv_client import CloudflareKVClient
from app.infrastructure.http_client import ExternalServiceError
from app.repositories import Repositories, build_sql_repositories
from app.security import hash_password

load_dotenv()

MIGRATED_PASSWORD = "migrated"
REQUIRED_ENV = (
    "CF_ACCOUNT_ID",
    "CF_TOKENS_KV_NAMESPACE_ID",
    "CF_SESSIONS_KV_NAMESPACE_ID",
    "CF_API_TOKEN",
)


@dataclass
class MigrationStats:
    """Track migration statistics for one record type."""

    name: str
    total: int = 0
    migrated: int = 0
    skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def print_report(self) -> None:
        print(f"{self.name}:")
        print(f"  Found in KV:    {self.total}")
        print(f"  Migrated:       {self.migrated}")
        print(f"  Skipped:        {self.skipped}")
        print(f"  Failed:         {len(self.errors)}")
        for error in self.errors:
            print(f"    - {error['key']}: {error['error']}")


class KVMigrator:
    """
    Copies KV records into the SQL repositories.

    Attributes:
        kv: Cloudflare KV client
        repos: SQL repositories
        dry_run: Read and parse records without writing them
    """

    def __init__(self, kv: CloudflareKVClient, repos: Repositories, dry_run: bool = False):
        self.kv = kv
        self.repos = repos
        self.dry_run = dry_run
        self._password_hash: Optional[str] = None

    def _placeholder_hash(self) -> str:
        if self._password_hash is None:
            self._password_hash = hash_password(MIGRATED_PASSWORD)
        return self._password_hash

    async def _find_or_create_user(self, reference: str, role: UserRole = UserRole.USER) -> User:
        """Resolve a KV user reference (id or username) to a SQL user."""
        user = await self.repos.users.get_by_id(reference)
        if user is None:
            user = await self.repos.users.get_by_username(reference)
        if user is not None:
            return user

        user = User(
            id=str(uuid.uuid4()),
            username=reference,
            password_hash=self._placeholder_hash(),
            role=UserRole.ADMIN if reference == "admin" else role,
        )
        if not self.dry_run:
            user = await self.repos.users.create(user)
        print(f"  + Created user {reference}")
        return user

    async def migrate_tokens(self, namespace_id: str) -> MigrationStats:
        stats = MigrationStats(name="Tokens")
        print("\nFetching tokens from Cloudflare KV...")

        async for key in self.kv.list_keys(namespace_id, prefix="token:"):
            stats.total += 1
            try:
                raw = await self.kv.get_value(namespace_id, key)
                if not raw:
                    stats.skipped += 1
                    continue
                data = json.loads(raw)

                if await self.repos.tokens.get(data["id"]):
                    print(f"  - Token {data['id']} already exists, skipping")
                    stats.skipped += 1
                    continue

                owner = await self._find_or_create_user(data.get("created_by") or "admin")
                data["created_by"] = owner.id
                token = Token.from_dict(data)
                if not self.dry_run:
                    await self.repos.tokens.create(token)
                stats.migrated += 1
                print(f"  ✓ Migrated token {token.id} ({stats.migrated}/{stats.total})")
            except (KeyError, ValueError, ExternalServiceError) as e:
                print(f"  ✗ Failed to migrate {key}: {e}")
                stats.errors.append({"key": key, "error": str(e)})

        return stats

    async def migrate_sessions(self, namespace_id: str) -> MigrationStats:
        stats = MigrationStats(name="Sessions")
        print("\nFetching sessions from Cloudflare KV...")
        now = utcnow()

        async for key in self.kv.list_keys(namespace_id, prefix="session:"):
            stats.total += 1
            try:
                raw = await self.kv.get_value(namespace_id, key)
                if not raw:
                    stats.skipped += 1
                    continue
                data = json.loads(raw)
                session_id = data["sessionId"]

                expires_at = parse_datetime(data["expiresAt"])
                if expires_at is None or expires_at < now:
                    print(f"  - Session {session_id[:8]} has expired, skipping")
                    stats.skipped += 1
                    continue

                if await self.repos.sessions.get(session_id):
                    print(f"  - Session {session_id[:8]} already exists, skipping")
                    stats.skipped += 1
                    continue

                role = UserRole.ADMIN if str(data.get("role", "")).lower() == "admin" else UserRole.USER
                user = await self._find_or_create_user(data["username"], role)
                session = LoginSession(
                    session_id=session_id,
                    user_id=user.id,
                    expires_at=expires_at,
                    created_at=parse_datetime(data.get("createdAt")) or now,
                )
                if not self.dry_run:
                    await self.repos.sessions.create(session)
                stats.migrated += 1
                print(f"  ✓ Migrated session {session_id[:8]} ({stats.migrated}/{stats.total})")
            except (KeyError, ValueError, ExternalServiceError) as e:
                print(f"  ✗ Failed to migrate {key}: {e}")
                stats.errors.append({"key": key, "error": str(e)})

        return stats


async def run_migration(dry_run: bool = False) -> None:
    """
    Execute the migration process.

    Args:
        dry_run: If True, read KV without writing to the database
    """
    print("=" * 60)
    print("CLOUDFLARE KV → SQL MIGRATION")
    print("=" * 60)

    missing = [name for name in REQUIRED_ENV if not os.getenv(name)]
    if missing:
        print("ERROR: Missing required environment variables:")
        for name in missing:
            print(f"  - {name}")
        sys.exit(1)

    if dry_run:
        print("Running in DRY RUN mode - no changes will be made")

    init_db()
    db = SessionLocal()
    kv = CloudflareKVClient(os.environ["CF_ACCOUNT_ID"], os.environ["CF_API_TOKEN"])
    migrator = KVMigrator(kv, build_sql_repositories(db), dry_run=dry_run)

    try:
        token_stats = await migrator.migrate_tokens(os.environ["CF_TOKENS_KV_NAMESPACE_ID"])
        session_stats = await migrator.migrate_sessions(os.environ["CF_SESSIONS_KV_NAMESPACE_ID"])

        print("\n" + "=" * 60)
        print("MIGRATION SUMMARY")
        print("=" * 60)
        token_stats.print_report()
        session_stats.print_report()
        print("=" * 60)
    except ExternalServiceError as e:
        print(f"\nFATAL ERROR: {e.message}")
        sys.exit(1)
    finally:
        await kv.close()
        db.close()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Migrate tokens and sessions from Cloudflare KV")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Read KV without writing to the database",
    )
    args = parser.parse_args()

    asyncio.run(run_migration(dry_run=args.dry_run))


if __name__ == "__main__":
    main()
