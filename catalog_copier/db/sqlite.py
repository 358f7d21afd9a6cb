"""
SQLite database implementation.
Simple and direct - no abstraction layers.
"""

import aiosqlite
import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
import os

from .models import (
    Shop, ImportedProduct, VariantMapping, BulkImportJob, ProgressEntry,
    ProductRef, JobError, JobStatus, ProductStatus, ProgressStatus, utcnow
)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp, dropping timezone info to avoid comparison issues."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None)
    return parsed


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_decimal(value: Optional[str]) -> Optional[Decimal]:
    return Decimal(value) if value is not None else None


def _format_decimal(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


class SQLiteDatabase:
    """SQLite database for all operations."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._connection: Optional[aiosqlite.Connection] = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            os.makedirs(os.path.dirname(self.db_path) or ".", exist_ok=True)
            self._connection = await aiosqlite.connect(self.db_path)
            self._connection.row_factory = aiosqlite.Row
            await self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    async def initialize(self) -> None:
        """Create database tables."""
        conn = await self._get_connection()

        await conn.executescript("""
            CREATE TABLE IF NOT EXISTS shops (
                shop_domain TEXT PRIMARY KEY,
                access_token TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS imported_products (
                id TEXT PRIMARY KEY,
                shop TEXT NOT NULL,
                source_shop TEXT NOT NULL,
                source_product_id TEXT NOT NULL,
                source_product_handle TEXT,
                source_product_url TEXT NOT NULL,
                destination_product_id TEXT NOT NULL,
                destination_handle TEXT,
                title TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'active',
                pricing_mode TEXT NOT NULL,
                markup_amount TEXT,
                multiplier TEXT,
                sync_enabled INTEGER NOT NULL DEFAULT 0,
                last_sync_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE(shop, source_product_id)
            );

            CREATE TABLE IF NOT EXISTS variant_mappings (
                id TEXT PRIMARY KEY,
                imported_product_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                source_variant_id TEXT NOT NULL,
                destination_variant_id TEXT NOT NULL,
                title TEXT NOT NULL DEFAULT '',
                sku TEXT,
                source_price TEXT NOT NULL,
                destination_price TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (imported_product_id) REFERENCES imported_products(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS bulk_import_jobs (
                id TEXT PRIMARY KEY,
                shop TEXT NOT NULL,
                source_shop TEXT NOT NULL,
                source_shop_url TEXT NOT NULL,
                product_refs TEXT NOT NULL,
                pricing_mode TEXT NOT NULL,
                markup_amount TEXT,
                multiplier TEXT,
                target_status TEXT NOT NULL DEFAULT 'ACTIVE',
                collection_id TEXT,
                job_status TEXT NOT NULL DEFAULT 'pending',
                total_products INTEGER NOT NULL DEFAULT 0,
                processed_products INTEGER NOT NULL DEFAULT 0,
                successful_imports INTEGER NOT NULL DEFAULT 0,
                failed_imports INTEGER NOT NULL DEFAULT 0,
                progress_entries_written INTEGER NOT NULL DEFAULT 0,
                errors TEXT NOT NULL DEFAULT '[]',
                created_at TEXT NOT NULL,
                started_at TEXT,
                completed_at TEXT
            );

            CREATE TABLE IF NOT EXISTS job_progress (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                job_id TEXT NOT NULL,
                handle TEXT NOT NULL,
                title TEXT NOT NULL,
                status TEXT NOT NULL,
                started_at TEXT NOT NULL,
                completed_at TEXT,
                source_price TEXT,
                destination_price TEXT,
                destination_product_id TEXT,
                error TEXT,
                FOREIGN KEY (job_id) REFERENCES bulk_import_jobs(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_imported_products_shop ON imported_products(shop);
            CREATE INDEX IF NOT EXISTS idx_imported_products_sync ON imported_products(shop, sync_enabled);
            CREATE INDEX IF NOT EXISTS idx_variant_mappings_product ON variant_mappings(imported_product_id, position);
            CREATE INDEX IF NOT EXISTS idx_bulk_import_jobs_shop ON bulk_import_jobs(shop);
            CREATE INDEX IF NOT EXISTS idx_job_progress_job ON job_progress(job_id, seq DESC);
        """)
        await conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    # ===== Helper Methods =====

    def _row_to_shop(self, row: aiosqlite.Row) -> Shop:
        return Shop(
            shop_domain=row["shop_domain"],
            access_token=row["access_token"],
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )

    def _row_to_mapping(self, row: aiosqlite.Row) -> VariantMapping:
        return VariantMapping(
            id=row["id"],
            imported_product_id=row["imported_product_id"],
            position=row["position"],
            source_variant_id=row["source_variant_id"],
            destination_variant_id=row["destination_variant_id"],
            title=row["title"],
            sku=row["sku"],
            source_price=Decimal(row["source_price"]),
            destination_price=Decimal(row["destination_price"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )

    def _row_to_product(
        self, row: aiosqlite.Row, variants: List[VariantMapping]
    ) -> ImportedProduct:
        return ImportedProduct(
            id=row["id"],
            shop=row["shop"],
            source_shop=row["source_shop"],
            source_product_id=row["source_product_id"],
            source_product_handle=row["source_product_handle"],
            source_product_url=row["source_product_url"],
            destination_product_id=row["destination_product_id"],
            destination_handle=row["destination_handle"],
            title=row["title"],
            status=ProductStatus(row["status"]),
            pricing_mode=row["pricing_mode"],
            markup_amount=_parse_decimal(row["markup_amount"]),
            multiplier=_parse_decimal(row["multiplier"]),
            sync_enabled=bool(row["sync_enabled"]),
            last_sync_at=_parse_datetime(row["last_sync_at"]),
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
            variants=variants,
        )

    def _row_to_job(self, row: aiosqlite.Row) -> BulkImportJob:
        return BulkImportJob(
            id=row["id"],
            shop=row["shop"],
            source_shop=row["source_shop"],
            source_shop_url=row["source_shop_url"],
            product_refs=[ProductRef(**ref) for ref in json.loads(row["product_refs"])],
            pricing_mode=row["pricing_mode"],
            markup_amount=_parse_decimal(row["markup_amount"]),
            multiplier=_parse_decimal(row["multiplier"]),
            target_status=row["target_status"],
            collection_id=row["collection_id"],
            job_status=JobStatus(row["job_status"]),
            total_products=row["total_products"],
            processed_products=row["processed_products"],
            successful_imports=row["successful_imports"],
            failed_imports=row["failed_imports"],
            progress_entries_written=row["progress_entries_written"],
            errors=[JobError(**e) for e in json.loads(row["errors"] or "[]")],
            created_at=_parse_datetime(row["created_at"]),
            started_at=_parse_datetime(row["started_at"]),
            completed_at=_parse_datetime(row["completed_at"]),
        )

    def _row_to_progress(self, row: aiosqlite.Row) -> ProgressEntry:
        return ProgressEntry(
            seq=row["seq"],
            handle=row["handle"],
            title=row["title"],
            status=ProgressStatus(row["status"]),
            started_at=_parse_datetime(row["started_at"]),
            completed_at=_parse_datetime(row["completed_at"]),
            source_price=_parse_decimal(row["source_price"]),
            destination_price=_parse_decimal(row["destination_price"]),
            destination_product_id=row["destination_product_id"],
            error=row["error"],
        )

    async def _load_mappings(self, product_ids: List[str]) -> Dict[str, List[VariantMapping]]:
        """Fetch variant mappings for several products, in creation order."""
        mappings: Dict[str, List[VariantMapping]] = {pid: [] for pid in product_ids}
        if not product_ids:
            return mappings

        conn = await self._get_connection()
        placeholders = ", ".join("?" for _ in product_ids)
        cursor = await conn.execute(
            f"SELECT * FROM variant_mappings WHERE imported_product_id IN ({placeholders}) "
            "ORDER BY imported_product_id, position",
            product_ids
        )
        for row in await cursor.fetchall():
            mappings[row["imported_product_id"]].append(self._row_to_mapping(row))
        return mappings

    async def _rows_to_products(self, rows: List[aiosqlite.Row]) -> List[ImportedProduct]:
        mappings = await self._load_mappings([row["id"] for row in rows])
        return [self._row_to_product(row, mappings[row["id"]]) for row in rows]

    # ===== Shop Operations =====

    async def get_shop(self, shop_domain: str) -> Optional[Shop]:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM shops WHERE shop_domain = ?", (shop_domain,))
        row = await cursor.fetchone()
        return self._row_to_shop(row) if row else None

    async def get_shops(self) -> List[Shop]:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM shops ORDER BY shop_domain")
        rows = await cursor.fetchall()
        return [self._row_to_shop(row) for row in rows]

    async def save_shop(self, shop: Shop) -> Shop:
        """Insert a shop or replace its access token."""
        conn = await self._get_connection()
        await conn.execute(
            """
            INSERT INTO shops (shop_domain, access_token, created_at, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(shop_domain) DO UPDATE SET
                access_token = excluded.access_token,
                updated_at = excluded.updated_at
            """,
            (
                shop.shop_domain,
                shop.access_token,
                shop.created_at.isoformat(),
                utcnow().isoformat(),
            )
        )
        await conn.commit()
        return await self.get_shop(shop.shop_domain)

    async def delete_shop_data(self, shop_domain: str) -> None:
        """Erase everything stored for a shop. Mappings and progress cascade."""
        conn = await self._get_connection()
        await conn.execute("DELETE FROM imported_products WHERE shop = ?", (shop_domain,))
        await conn.execute("DELETE FROM bulk_import_jobs WHERE shop = ?", (shop_domain,))
        await conn.execute("DELETE FROM shops WHERE shop_domain = ?", (shop_domain,))
        await conn.commit()

    # ===== Imported Product Operations =====

    async def get_imported_product(self, product_id: str) -> Optional[ImportedProduct]:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM imported_products WHERE id = ?", (product_id,))
        row = await cursor.fetchone()
        if not row:
            return None
        products = await self._rows_to_products([row])
        return products[0]

    async def get_imported_product_by_source(
        self, shop: str, source_product_id: str
    ) -> Optional[ImportedProduct]:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT * FROM imported_products WHERE shop = ? AND source_product_id = ?",
            (shop, source_product_id)
        )
        row = await cursor.fetchone()
        if not row:
            return None
        products = await self._rows_to_products([row])
        return products[0]

    async def is_product_already_imported(self, shop: str, source_product_id: str) -> bool:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT 1 FROM imported_products WHERE shop = ? AND source_product_id = ?",
            (shop, source_product_id)
        )
        return await cursor.fetchone() is not None

    async def get_imported_products_count(self, shop: str) -> int:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT COUNT(*) AS total FROM imported_products WHERE shop = ?", (shop,)
        )
        row = await cursor.fetchone()
        return row["total"]

    async def create_imported_product(self, product: ImportedProduct) -> ImportedProduct:
        """
        Insert an imported product and its variant mappings in one transaction.

        Raises:
            aiosqlite.IntegrityError: If the source product was already imported for the shop
        """
        conn = await self._get_connection()
        try:
            await conn.execute(
                """
                INSERT INTO imported_products (id, shop, source_shop, source_product_id,
                    source_product_handle, source_product_url, destination_product_id,
                    destination_handle, title, status, pricing_mode, markup_amount, multiplier,
                    sync_enabled, last_sync_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    product.id,
                    product.shop,
                    product.source_shop,
                    product.source_product_id,
                    product.source_product_handle,
                    product.source_product_url,
                    product.destination_product_id,
                    product.destination_handle,
                    product.title,
                    product.status.value,
                    product.pricing_mode,
                    _format_decimal(product.markup_amount),
                    _format_decimal(product.multiplier),
                    int(product.sync_enabled),
                    _format_datetime(product.last_sync_at),
                    product.created_at.isoformat(),
                    product.updated_at.isoformat(),
                )
            )

            for position, mapping in enumerate(product.variants):
                mapping.imported_product_id = product.id
                mapping.position = position
                await conn.execute(
                    """
                    INSERT INTO variant_mappings (id, imported_product_id, position,
                        source_variant_id, destination_variant_id, title, sku,
                        source_price, destination_price, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        mapping.id,
                        product.id,
                        position,
                        mapping.source_variant_id,
                        mapping.destination_variant_id,
                        mapping.title,
                        mapping.sku,
                        str(mapping.source_price),
                        str(mapping.destination_price),
                        mapping.updated_at.isoformat(),
                    )
                )

            await conn.commit()
        except Exception:
            await conn.rollback()
            raise

        return product

    async def get_imported_products(
        self,
        shop: str,
        status: Optional[ProductStatus] = None,
        source_shop: Optional[str] = None,
        pricing_mode: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[ImportedProduct], int]:
        """Return one page of a shop's import history and the total match count."""
        conn = await self._get_connection()

        where = "WHERE shop = ?"
        params: List[Any] = [shop]

        if status:
            where += " AND status = ?"
            params.append(status.value)

        if source_shop:
            where += " AND source_shop = ?"
            params.append(source_shop)

        if pricing_mode:
            where += " AND pricing_mode = ?"
            params.append(pricing_mode)

        if search:
            where += " AND (title LIKE ? OR source_product_handle LIKE ? OR destination_handle LIKE ?)"
            pattern = f"%{search}%"
            params.extend([pattern, pattern, pattern])

        cursor = await conn.execute(f"SELECT COUNT(*) AS total FROM imported_products {where}", params)
        total = (await cursor.fetchone())["total"]

        cursor = await conn.execute(
            f"SELECT * FROM imported_products {where} ORDER BY created_at DESC LIMIT ? OFFSET ?",
            params + [limit, offset]
        )
        rows = await cursor.fetchall()
        return await self._rows_to_products(rows), total

    async def get_product_stats(self, shop: str) -> Dict[str, int]:
        conn = await self._get_connection()
        cursor = await conn.execute(
            """
            SELECT
                COUNT(*) AS total,
                COALESCE(SUM(status = 'active'), 0) AS active,
                COALESCE(SUM(status = 'draft'), 0) AS draft,
                COALESCE(SUM(status = 'archived'), 0) AS archived,
                COALESCE(SUM(sync_enabled), 0) AS with_sync_enabled
            FROM imported_products WHERE shop = ?
            """,
            (shop,)
        )
        row = await cursor.fetchone()
        return {key: row[key] for key in ("total", "active", "draft", "archived", "with_sync_enabled")}

    async def get_unique_source_shops(self, shop: str) -> List[str]:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT DISTINCT source_shop FROM imported_products WHERE shop = ? ORDER BY source_shop",
            (shop,)
        )
        return [row["source_shop"] for row in await cursor.fetchall()]

    async def get_products_with_sync_enabled(self, shop: str) -> List[ImportedProduct]:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT * FROM imported_products WHERE shop = ? AND sync_enabled = 1 ORDER BY created_at",
            (shop,)
        )
        return await self._rows_to_products(await cursor.fetchall())

    async def get_products_needing_sync(self, shop: str, cutoff: datetime) -> List[ImportedProduct]:
        """Sync-enabled products never synced or last synced before the cutoff."""
        conn = await self._get_connection()
        cursor = await conn.execute(
            """
            SELECT * FROM imported_products
            WHERE shop = ? AND sync_enabled = 1
              AND (last_sync_at IS NULL OR last_sync_at < ?)
            ORDER BY created_at
            """,
            (shop, cutoff.isoformat())
        )
        return await self._rows_to_products(await cursor.fetchall())

    async def update_imported_product(self, product_id: str, **kwargs) -> Optional[ImportedProduct]:
        """Update status, sync flag or last sync time. The pricing rule is fixed at import."""
        if not kwargs:
            return await self.get_imported_product(product_id)

        updates = []
        values = []

        field_mapping = {
            "status": "status",
            "sync_enabled": "sync_enabled",
            "last_sync_at": "last_sync_at",
        }

        for key, value in kwargs.items():
            if key in field_mapping:
                updates.append(f"{field_mapping[key]} = ?")
                if key == "sync_enabled":
                    values.append(int(value))
                elif key == "last_sync_at":
                    values.append(value.isoformat() if isinstance(value, datetime) else value)
                else:
                    values.append(value.value if isinstance(value, ProductStatus) else value)

        updates.append("updated_at = ?")
        values.append(utcnow().isoformat())
        values.append(product_id)

        conn = await self._get_connection()
        await conn.execute(f"UPDATE imported_products SET {', '.join(updates)} WHERE id = ?", values)
        await conn.commit()

        return await self.get_imported_product(product_id)

    async def set_sync_enabled(self, product_id: str, enabled: bool) -> Optional[ImportedProduct]:
        """Toggle sync. Disabling also forgets the last sync time."""
        if enabled:
            return await self.update_imported_product(product_id, sync_enabled=True)
        return await self.update_imported_product(product_id, sync_enabled=False, last_sync_at=None)

    async def set_product_status(self, product_id: str, status: ProductStatus) -> Optional[ImportedProduct]:
        return await self.update_imported_product(product_id, status=status)

    async def update_variant_prices(self, mappings: List[VariantMapping]) -> None:
        """Persist new source/destination prices for synced variants."""
        if not mappings:
            return

        conn = await self._get_connection()
        now = utcnow().isoformat()
        for mapping in mappings:
            await conn.execute(
                "UPDATE variant_mappings SET source_price = ?, destination_price = ?, updated_at = ? WHERE id = ?",
                (str(mapping.source_price), str(mapping.destination_price), now, mapping.id)
            )
        await conn.commit()

    async def delete_imported_product(self, product_id: str) -> bool:
        conn = await self._get_connection()
        cursor = await conn.execute("DELETE FROM imported_products WHERE id = ?", (product_id,))
        await conn.commit()
        return cursor.rowcount > 0

    # ===== Bulk Import Job Operations =====

    async def create_job(self, job: BulkImportJob) -> BulkImportJob:
        conn = await self._get_connection()
        await conn.execute(
            """
            INSERT INTO bulk_import_jobs (id, shop, source_shop, source_shop_url, product_refs,
                pricing_mode, markup_amount, multiplier, target_status, collection_id,
                job_status, total_products, errors, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                job.id,
                job.shop,
                job.source_shop,
                job.source_shop_url,
                json.dumps([ref.model_dump() for ref in job.product_refs]),
                job.pricing_mode,
                _format_decimal(job.markup_amount),
                _format_decimal(job.multiplier),
                job.target_status,
                job.collection_id,
                job.job_status.value,
                job.total_products,
                "[]",
                job.created_at.isoformat(),
            )
        )
        await conn.commit()
        return job

    async def get_job(self, job_id: str) -> Optional[BulkImportJob]:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM bulk_import_jobs WHERE id = ?", (job_id,))
        row = await cursor.fetchone()
        return self._row_to_job(row) if row else None

    async def get_jobs(self, shop: str, limit: int = 20) -> List[BulkImportJob]:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT * FROM bulk_import_jobs WHERE shop = ? ORDER BY created_at DESC LIMIT ?",
            (shop, limit)
        )
        return [self._row_to_job(row) for row in await cursor.fetchall()]

    async def mark_job_processing(self, job_id: str) -> bool:
        """
        Move a job from pending to processing.

        Returns:
            False if the job was not pending (already started or finished)
        """
        conn = await self._get_connection()
        cursor = await conn.execute(
            "UPDATE bulk_import_jobs SET job_status = ?, started_at = ? WHERE id = ? AND job_status = ?",
            (JobStatus.PROCESSING.value, utcnow().isoformat(), job_id, JobStatus.PENDING.value)
        )
        await conn.commit()
        return cursor.rowcount > 0

    async def record_job_item(self, job_id: str, processed: int, success: bool) -> None:
        """Update counters after one product was handled."""
        counter = "successful_imports" if success else "failed_imports"
        conn = await self._get_connection()
        await conn.execute(
            f"UPDATE bulk_import_jobs SET processed_products = ?, {counter} = {counter} + 1 WHERE id = ?",
            (processed, job_id)
        )
        await conn.commit()

    async def set_job_errors(self, job_id: str, errors: List[JobError]) -> None:
        conn = await self._get_connection()
        await conn.execute(
            "UPDATE bulk_import_jobs SET errors = ? WHERE id = ?",
            (json.dumps([e.model_dump() for e in errors]), job_id)
        )
        await conn.commit()

    async def finish_job(self, job_id: str, status: JobStatus, errors: List[JobError]) -> None:
        conn = await self._get_connection()
        await conn.execute(
            "UPDATE bulk_import_jobs SET job_status = ?, completed_at = ?, errors = ? WHERE id = ?",
            (
                status.value,
                utcnow().isoformat(),
                json.dumps([e.model_dump() for e in errors]),
                job_id,
            )
        )
        await conn.commit()

    async def append_progress(self, job_id: str, entry: ProgressEntry, limit: int) -> None:
        """
        Append one entry to a job's progress log and drop all but the newest ``limit``.

        The insert, the trim and the counter update are committed together.
        """
        conn = await self._get_connection()
        await conn.execute(
            """
            INSERT INTO job_progress (job_id, handle, title, status, started_at, completed_at,
                source_price, destination_price, destination_product_id, error)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                job_id,
                entry.handle,
                entry.title,
                entry.status.value,
                entry.started_at.isoformat(),
                _format_datetime(entry.completed_at),
                _format_decimal(entry.source_price),
                _format_decimal(entry.destination_price),
                entry.destination_product_id,
                entry.error,
            )
        )
        await conn.execute(
            """
            DELETE FROM job_progress WHERE job_id = ? AND seq NOT IN (
                SELECT seq FROM job_progress WHERE job_id = ? ORDER BY seq DESC LIMIT ?
            )
            """,
            (job_id, job_id, limit)
        )
        await conn.execute(
            "UPDATE bulk_import_jobs SET progress_entries_written = progress_entries_written + 1 WHERE id = ?",
            (job_id,)
        )
        await conn.commit()

    async def get_progress(self, job_id: str, limit: int) -> List[ProgressEntry]:
        """Newest ``limit`` progress entries, returned oldest first."""
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT * FROM job_progress WHERE job_id = ? ORDER BY seq DESC LIMIT ?",
            (job_id, limit)
        )
        rows = await cursor.fetchall()
        return [self._row_to_progress(row) for row in reversed(rows)]
