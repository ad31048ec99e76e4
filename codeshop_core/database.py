"""Async SQLite data layer for Codeshop, one database file per guild."""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import aiosqlite

from .constants import (
    DATABASE_CONNECT_TIMEOUT_SECONDS,
    DATABASE_MAX_RETRIES,
    DEFAULT_DATA_DIR,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_PENDING,
    RECENT_ORDERS_LIMIT,
)
from .errors import (
    CodeExistsError,
    InsufficientStockError,
    OrderStateError,
    ProductExistsError,
)
from .logger import get_logger

logger = get_logger()


@dataclass(frozen=True)
class CompletedOrder:
    """Result of fulfilling a pending order."""

    order_id: int
    user_id: str
    username: str
    product_code: str
    product_name: str
    quantity: int
    unit_price: int
    total_price: int
    codes: list[str]


@dataclass(frozen=True)
class SalesHistory:
    daily: int
    weekly: int
    monthly: int
    all_time: int


def _normalize_code(code: str) -> str:
    return code.strip().upper()


class TenantDatabase:
    """Async database handler for a single guild."""

    def __init__(
        self,
        guild_id: int,
        db_path: str | Path = ":memory:",
        connect_timeout: float | None = None,
    ) -> None:
        self.guild_id = guild_id
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._connection: Optional[aiosqlite.Connection] = None
        # Serializes every write on the shared connection.
        self._write_lock = asyncio.Lock()

        if connect_timeout is None:
            connect_timeout = float(
                os.getenv("DB_CONNECT_TIMEOUT", str(DATABASE_CONNECT_TIMEOUT_SECONDS))
            )
        self.connect_timeout = connect_timeout

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("Database connection not initialized.")
        return self._connection

    async def connect(self) -> None:
        """Connect with timeout protection and exponential backoff retries."""
        if self._connection is not None:
            return

        for attempt in range(DATABASE_MAX_RETRIES + 1):
            try:
                self._connection = await asyncio.wait_for(
                    aiosqlite.connect(str(self.db_path)),
                    timeout=self.connect_timeout,
                )
            except asyncio.TimeoutError:
                self._connection = None
                error_msg = (
                    f"Database connection for guild {self.guild_id} timed out after "
                    f"{self.connect_timeout}s (attempt {attempt + 1}/{DATABASE_MAX_RETRIES + 1})"
                )
                if attempt >= DATABASE_MAX_RETRIES:
                    logger.error(f"{error_msg}. Max retries exhausted.")
                    raise TimeoutError(error_msg) from None
            except Exception as conn_error:
                self._connection = None
                error_msg = (
                    f"Failed to connect to database for guild {self.guild_id} "
                    f"(attempt {attempt + 1}/{DATABASE_MAX_RETRIES + 1}): {conn_error}"
                )
                if attempt >= DATABASE_MAX_RETRIES:
                    logger.error(f"{error_msg}. Max retries exhausted.")
                    raise RuntimeError(error_msg) from conn_error
            else:
                break

            wait_seconds = 2 ** attempt
            logger.warning(f"{error_msg}. Waiting {wait_seconds}s before retry...")
            await asyncio.sleep(wait_seconds)

        try:
            self._connection.row_factory = aiosqlite.Row
            await self._initialize_schema()
        except Exception as init_error:
            await self._connection.close()
            self._connection = None
            logger.error(
                f"Failed to initialize database for guild {self.guild_id}: {init_error}. "
                f"Database path: {self.db_path}"
            )
            raise

    async def close(self) -> None:
        if self._connection:
            await self._connection.close()
            self._connection = None

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    async def _initialize_schema(self) -> None:
        await self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL UNIQUE,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        await self.connection.commit()

        current_version = await self._get_current_schema_version()
        await self._apply_pending_migrations(current_version)
        logger.debug(
            f"Guild {self.guild_id} schema at version {await self._get_current_schema_version()}"
        )

    async def _get_current_schema_version(self) -> int:
        cursor = await self.connection.execute(
            "SELECT MAX(version) as version FROM schema_migrations"
        )
        row = await cursor.fetchone()
        return row["version"] if row and row["version"] else 0

    async def _apply_pending_migrations(self, current_version: int) -> None:
        migrations = {
            1: ("catalog_tables", self._migration_v1),
            2: ("orders_and_purchases", self._migration_v2),
            3: ("testimonials_table", self._migration_v3),
            4: ("lookup_indexes", self._migration_v4),
        }

        for version in sorted(migrations):
            if version <= current_version:
                continue
            name, migration_fn = migrations[version]
            logger.info(f"Applying migration v{version} for guild {self.guild_id}: {name}")
            try:
                await migration_fn()
                await self.connection.execute(
                    "INSERT INTO schema_migrations (version, name) VALUES (?, ?)",
                    (version, name),
                )
                await self.connection.commit()
            except Exception as e:
                logger.exception(f"Failed to apply migration v{version} ({name}): {e}")
                raise RuntimeError(f"Migration v{version} ({name}) failed: {e}") from e

    async def _migration_v1(self) -> None:
        """Migration v1: products, codes and settings."""
        await self.connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS products (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                code TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                price INTEGER NOT NULL,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS codes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                product TEXT NOT NULL,
                code TEXT NOT NULL UNIQUE,
                used INTEGER DEFAULT 0,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT
            );
            """
        )

    async def _migration_v2(self) -> None:
        """Migration v2: orders, purchases and the spend leaderboard."""
        await self.connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS orders (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                username TEXT NOT NULL,
                product TEXT NOT NULL,
                quantity INTEGER NOT NULL,
                status TEXT DEFAULT 'pending',
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS purchases (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                username TEXT NOT NULL,
                avatar_url TEXT,
                product TEXT NOT NULL,
                quantity INTEGER NOT NULL,
                unit_price INTEGER NOT NULL,
                total_price INTEGER NOT NULL,
                purchased_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS leaderboard (
                user_id TEXT PRIMARY KEY,
                username TEXT NOT NULL,
                total_purchases INTEGER DEFAULT 0,
                total_spent INTEGER DEFAULT 0
            );
            """
        )

    async def _migration_v3(self) -> None:
        """Migration v3: customer testimonials."""
        await self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS testimonials (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                username TEXT NOT NULL,
                avatar_url TEXT,
                message TEXT NOT NULL,
                rating INTEGER DEFAULT 5,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
            """
        )

    async def _migration_v4(self) -> None:
        """Migration v4: indexes for stock counts and order lookups."""
        await self.connection.executescript(
            """
            CREATE INDEX IF NOT EXISTS idx_codes_product_used ON codes(product, used);
            CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status);
            CREATE INDEX IF NOT EXISTS idx_orders_user ON orders(user_id, created_at);
            CREATE INDEX IF NOT EXISTS idx_purchases_purchased_at ON purchases(purchased_at);
            """
        )

    @asynccontextmanager
    async def transaction(self):
        """
        Run the enclosed statements atomically, rolling back on any exception.

        Holds the write lock for the whole block, so transactions from
        concurrent tasks never interleave on the shared connection.
        """
        async with self._write_lock:
            await self.connection.execute("BEGIN IMMEDIATE")
            try:
                yield self.connection
            except Exception as e:
                try:
                    await self.connection.rollback()
                    logger.debug(f"Transaction rolled back for guild {self.guild_id}: {e}")
                except Exception as rollback_error:
                    logger.error(f"Failed to rollback transaction: {rollback_error}")
                raise
            else:
                await self.connection.commit()

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def add_product(self, code: str, name: str, price: int) -> int:
        """Create a product; codes are stored upper-cased and must be unique."""
        normalized = _normalize_code(code)
        try:
            async with self.transaction() as conn:
                cursor = await conn.execute(
                    "INSERT INTO products (code, name, price) VALUES (?, ?, ?)",
                    (normalized, name, price),
                )
        except aiosqlite.IntegrityError as exc:
            raise ProductExistsError(normalized) from exc
        return cursor.lastrowid

    async def get_products(self) -> list[aiosqlite.Row]:
        cursor = await self.connection.execute("SELECT * FROM products ORDER BY name ASC")
        return list(await cursor.fetchall())

    async def get_product(self, code: str) -> Optional[aiosqlite.Row]:
        cursor = await self.connection.execute(
            "SELECT * FROM products WHERE code = ?",
            (_normalize_code(code),),
        )
        return await cursor.fetchone()

    async def update_product(self, code: str, name: str, price: int) -> bool:
        async with self.transaction() as conn:
            cursor = await conn.execute(
                "UPDATE products SET name = ?, price = ? WHERE code = ?",
                (name, price, _normalize_code(code)),
            )
        return cursor.rowcount > 0

    async def delete_product(self, code: str) -> bool:
        async with self.transaction() as conn:
            cursor = await conn.execute(
                "DELETE FROM products WHERE code = ?",
                (_normalize_code(code),),
            )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Codes
    # ------------------------------------------------------------------

    async def add_code(self, product: str, code: str) -> None:
        try:
            async with self.transaction() as conn:
                await conn.execute(
                    "INSERT INTO codes (product, code) VALUES (?, ?)",
                    (_normalize_code(product), code.strip()),
                )
        except aiosqlite.IntegrityError as exc:
            raise CodeExistsError(code.strip()) from exc

    async def add_codes(self, product: str, codes: Iterable[str]) -> int:
        """Insert many codes at once, skipping duplicates. Returns how many were added."""
        normalized = _normalize_code(product)
        added = 0
        async with self.transaction() as conn:
            for code in codes:
                code = code.strip()
                if not code:
                    continue
                cursor = await conn.execute(
                    "INSERT OR IGNORE INTO codes (product, code) VALUES (?, ?)",
                    (normalized, code),
                )
                added += cursor.rowcount
        return added

    async def get_available_codes(self, product: str, quantity: int) -> list[aiosqlite.Row]:
        cursor = await self.connection.execute(
            "SELECT * FROM codes WHERE product = ? AND used = 0 ORDER BY id LIMIT ?",
            (_normalize_code(product), quantity),
        )
        return list(await cursor.fetchall())

    async def mark_codes_used(self, code_ids: Iterable[int]) -> None:
        async with self.transaction() as conn:
            await conn.executemany(
                "UPDATE codes SET used = 1 WHERE id = ?",
                [(code_id,) for code_id in code_ids],
            )

    async def delete_code(self, product: str, code: str) -> bool:
        async with self.transaction() as conn:
            cursor = await conn.execute(
                "DELETE FROM codes WHERE product = ? AND code = ?",
                (_normalize_code(product), code.strip()),
            )
        return cursor.rowcount > 0

    async def view_codes(self, product: str) -> list[aiosqlite.Row]:
        cursor = await self.connection.execute(
            "SELECT * FROM codes WHERE product = ? AND used = 0 ORDER BY id",
            (_normalize_code(product),),
        )
        return list(await cursor.fetchall())

    async def get_product_stock(self, product: str) -> int:
        cursor = await self.connection.execute(
            "SELECT COUNT(*) AS count FROM codes WHERE product = ? AND used = 0",
            (_normalize_code(product),),
        )
        row = await cursor.fetchone()
        return row["count"] if row else 0

    async def get_stock(self) -> list[aiosqlite.Row]:
        """Available and total code counts grouped by product."""
        cursor = await self.connection.execute(
            """
            SELECT product,
                   COUNT(CASE WHEN used = 0 THEN 1 END) AS available,
                   COUNT(*) AS total
            FROM codes
            GROUP BY product
            ORDER BY product
            """
        )
        return list(await cursor.fetchall())

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def create_order(self, user_id: int | str, username: str, product: str, quantity: int) -> int:
        async with self.transaction() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO orders (user_id, username, product, quantity, status)
                VALUES (?, ?, ?, ?, ?)
                """,
                (str(user_id), username, _normalize_code(product), quantity, ORDER_STATUS_PENDING),
            )
        return cursor.lastrowid

    async def update_order_status(self, order_id: int, status: str) -> bool:
        async with self.transaction() as conn:
            cursor = await conn.execute(
                "UPDATE orders SET status = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (status, order_id),
            )
        return cursor.rowcount > 0

    async def get_order(self, order_id: int) -> Optional[aiosqlite.Row]:
        cursor = await self.connection.execute("SELECT * FROM orders WHERE id = ?", (order_id,))
        return await cursor.fetchone()

    async def get_pending_orders(self) -> list[aiosqlite.Row]:
        cursor = await self.connection.execute(
            "SELECT * FROM orders WHERE status = ? ORDER BY created_at DESC, id DESC",
            (ORDER_STATUS_PENDING,),
        )
        return list(await cursor.fetchall())

    async def get_user_orders(self, user_id: int | str, limit: int = RECENT_ORDERS_LIMIT) -> list[aiosqlite.Row]:
        cursor = await self.connection.execute(
            "SELECT * FROM orders WHERE user_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (str(user_id), limit),
        )
        return list(await cursor.fetchall())

    async def complete_order(self, order_id: int, *, avatar_url: Optional[str] = None) -> CompletedOrder:
        """
        Fulfil a pending order in one transaction.

        Claims unused codes for the ordered product, marks them used, records
        the purchase, bumps the buyer's leaderboard totals and flips the order
        to completed.

        Raises:
            OrderStateError: order missing, not pending, or product deleted
            InsufficientStockError: fewer unused codes than the order quantity
        """
        async with self.transaction() as conn:
            cursor = await conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,))
            order = await cursor.fetchone()
            if order is None:
                raise OrderStateError(f"Order #{order_id} not found")
            if order["status"] != ORDER_STATUS_PENDING:
                raise OrderStateError(f"Order #{order_id} is already {order['status']}")

            cursor = await conn.execute(
                "SELECT * FROM products WHERE code = ?", (order["product"],)
            )
            product = await cursor.fetchone()
            if product is None:
                raise OrderStateError(f"Product {order['product']} no longer exists")

            quantity = order["quantity"]
            cursor = await conn.execute(
                "SELECT id, code FROM codes WHERE product = ? AND used = 0 ORDER BY id LIMIT ?",
                (product["code"], quantity),
            )
            code_rows = list(await cursor.fetchall())
            if len(code_rows) < quantity:
                raise InsufficientStockError(product["code"], quantity, len(code_rows))

            await conn.executemany(
                "UPDATE codes SET used = 1 WHERE id = ?",
                [(row["id"],) for row in code_rows],
            )

            unit_price = product["price"]
            total_price = unit_price * quantity
            await self._record_purchase(
                conn,
                user_id=order["user_id"],
                username=order["username"],
                avatar_url=avatar_url,
                product=product["name"],
                quantity=quantity,
                unit_price=unit_price,
                total_price=total_price,
            )
            await conn.execute(
                "UPDATE orders SET status = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (ORDER_STATUS_COMPLETED, order_id),
            )

        return CompletedOrder(
            order_id=order_id,
            user_id=order["user_id"],
            username=order["username"],
            product_code=product["code"],
            product_name=product["name"],
            quantity=quantity,
            unit_price=unit_price,
            total_price=total_price,
            codes=[row["code"] for row in code_rows],
        )

    # ------------------------------------------------------------------
    # Purchases & leaderboard
    # ------------------------------------------------------------------

    async def _record_purchase(
        self,
        conn: aiosqlite.Connection,
        *,
        user_id: int | str,
        username: str,
        avatar_url: Optional[str],
        product: str,
        quantity: int,
        unit_price: int,
        total_price: int,
    ) -> None:
        await conn.execute(
            """
            INSERT INTO purchases (user_id, username, avatar_url, product, quantity, unit_price, total_price)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (str(user_id), username, avatar_url, product, quantity, unit_price, total_price),
        )
        await conn.execute(
            """
            INSERT INTO leaderboard (user_id, username, total_purchases, total_spent)
            VALUES (?, ?, 1, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                username = excluded.username,
                total_purchases = total_purchases + 1,
                total_spent = total_spent + excluded.total_spent
            """,
            (str(user_id), username, total_price),
        )

    async def add_purchase(
        self,
        user_id: int | str,
        username: str,
        avatar_url: Optional[str],
        product: str,
        quantity: int,
        unit_price: int,
        total_price: int,
    ) -> None:
        """Record a purchase made outside the order flow and update the leaderboard."""
        async with self.transaction() as conn:
            await self._record_purchase(
                conn,
                user_id=user_id,
                username=username,
                avatar_url=avatar_url,
                product=product,
                quantity=quantity,
                unit_price=unit_price,
                total_price=total_price,
            )

    async def get_purchases(self, limit: int = 10) -> list[aiosqlite.Row]:
        cursor = await self.connection.execute(
            "SELECT * FROM purchases ORDER BY purchased_at DESC, id DESC LIMIT ?",
            (limit,),
        )
        return list(await cursor.fetchall())

    async def get_leaderboard(self, limit: int = 10) -> list[aiosqlite.Row]:
        cursor = await self.connection.execute(
            "SELECT * FROM leaderboard ORDER BY total_spent DESC LIMIT ?",
            (limit,),
        )
        return list(await cursor.fetchall())

    async def get_sales_history(self) -> SalesHistory:
        async def _total(where: str = "") -> int:
            cursor = await self.connection.execute(
                f"SELECT COALESCE(SUM(total_price), 0) AS total FROM purchases {where}"
            )
            row = await cursor.fetchone()
            return row["total"] if row else 0

        return SalesHistory(
            daily=await _total("WHERE date(purchased_at) = date('now')"),
            weekly=await _total("WHERE purchased_at >= datetime('now', '-7 days')"),
            monthly=await _total(
                "WHERE strftime('%Y-%m', purchased_at) = strftime('%Y-%m', 'now')"
            ),
            all_time=await _total(),
        )

    # ------------------------------------------------------------------
    # Testimonials
    # ------------------------------------------------------------------

    async def add_testimonial(
        self,
        user_id: int | str,
        username: str,
        avatar_url: Optional[str],
        message: str,
        rating: int = 5,
    ) -> int:
        if not 1 <= rating <= 5:
            raise ValueError(f"rating must be between 1 and 5 (got {rating})")
        async with self.transaction() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO testimonials (user_id, username, avatar_url, message, rating)
                VALUES (?, ?, ?, ?, ?)
                """,
                (str(user_id), username, avatar_url, message, rating),
            )
        return cursor.lastrowid

    async def get_testimonials(self, limit: int = 10) -> list[aiosqlite.Row]:
        cursor = await self.connection.execute(
            "SELECT * FROM testimonials ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,),
        )
        return list(await cursor.fetchall())

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def set_setting(self, key: str, value: str) -> None:
        async with self.transaction() as conn:
            await conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, value),
            )

    async def get_setting(self, key: str) -> Optional[str]:
        cursor = await self.connection.execute(
            "SELECT value FROM settings WHERE key = ?", (key,)
        )
        row = await cursor.fetchone()
        return row["value"] if row else None

    async def delete_setting(self, key: str) -> None:
        async with self.transaction() as conn:
            await conn.execute("DELETE FROM settings WHERE key = ?", (key,))


class TenantStore:
    """Opens and caches one TenantDatabase per guild.

    With ``data_dir=None`` every tenant lives in memory, which is what the
    tests use.
    """

    def __init__(
        self,
        data_dir: str | Path | None = DEFAULT_DATA_DIR,
        connect_timeout: float | None = None,
    ) -> None:
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self.connect_timeout = connect_timeout
        self._tenants: dict[int, TenantDatabase] = {}
        self._open_lock = asyncio.Lock()

    def _path_for(self, guild_id: int) -> str | Path:
        if self.data_dir is None:
            return ":memory:"
        self.data_dir.mkdir(parents=True, exist_ok=True)
        return self.data_dir / f"{guild_id}.db"

    async def tenant(self, guild_id: int) -> TenantDatabase:
        """Return the connected database for ``guild_id``, opening it on first use."""
        db = self._tenants.get(guild_id)
        if db is not None:
            return db

        async with self._open_lock:
            db = self._tenants.get(guild_id)
            if db is None:
                db = TenantDatabase(guild_id, self._path_for(guild_id), self.connect_timeout)
                await db.connect()
                self._tenants[guild_id] = db
                logger.info(f"Opened tenant database for guild {guild_id}")
        return db

    @property
    def open_tenants(self) -> list[int]:
        return list(self._tenants)

    async def close(self) -> None:
        for guild_id, db in list(self._tenants.items()):
            try:
                await db.close()
            except Exception as e:
                logger.error(f"Failed to close database for guild {guild_id}: {e}", exc_info=True)
        self._tenants.clear()
