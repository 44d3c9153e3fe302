"""SQLite-backed stores for the collections this core owns: rules, feedback, matches."""
from __future__ import annotations

import asyncio
import json
import sqlite3
from typing import Any, Dict, List, Optional

from fincore.core.config import get_settings
from fincore.models.feedback import FeedbackRecord
from fincore.models.matches import InvoiceTransactionMatch
from fincore.models.patterns import PatternRule
from fincore.stores.base import DuplicateMatchError
from fincore.stores.db import DB


def _default_path() -> str:
    return get_settings().state_db_path


class SQLiteRuleStore:
    def __init__(self, db_path: Optional[str] = None) -> None:
        self.db = DB(sqlite_path=db_path or _default_path())
        self._ensure_table()

    def _ensure_table(self) -> None:
        self.db.execute(
            """
            CREATE TABLE IF NOT EXISTS fc_categorization_rules (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                pattern TEXT NOT NULL,
                pattern_kind TEXT NOT NULL,
                category TEXT NOT NULL,
                confidence REAL NOT NULL,
                priority INTEGER NOT NULL DEFAULT 0,
                is_active INTEGER NOT NULL DEFAULT 1,
                source TEXT NOT NULL,
                metadata TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )

    async def get_active_rules_for_user(self, user_id: str) -> List[PatternRule]:
        rows = await asyncio.to_thread(
            self.db.fetchall_dict,
            "SELECT * FROM fc_categorization_rules WHERE user_id = ? AND is_active = 1 ORDER BY rowid",
            (user_id,),
        )
        return [_row_to_rule(row) for row in rows]

    async def find_by_id(self, rule_id: str) -> Optional[PatternRule]:
        row = await asyncio.to_thread(
            self.db.fetchone_dict, "SELECT * FROM fc_categorization_rules WHERE id = ?", (rule_id,)
        )
        return _row_to_rule(row) if row else None

    async def save(self, rule: PatternRule) -> PatternRule:
        await asyncio.to_thread(
            self.db.execute,
            """
            INSERT INTO fc_categorization_rules
                (id, user_id, pattern, pattern_kind, category, confidence, priority, is_active, source, metadata, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                pattern=excluded.pattern,
                pattern_kind=excluded.pattern_kind,
                category=excluded.category,
                confidence=excluded.confidence,
                priority=excluded.priority,
                is_active=excluded.is_active,
                metadata=excluded.metadata,
                updated_at=excluded.updated_at
            """,
            (
                rule.id,
                rule.user_id,
                rule.pattern,
                rule.pattern_kind.value,
                rule.category,
                rule.confidence,
                rule.priority,
                1 if rule.is_active else 0,
                rule.source.value,
                json.dumps(rule.metadata),
                rule.created_at.isoformat(),
                rule.updated_at.isoformat(),
            ),
        )
        return rule


class SQLiteFeedbackStore:
    def __init__(self, db_path: Optional[str] = None) -> None:
        self.db = DB(sqlite_path=db_path or _default_path())
        self._ensure_table()

    def _ensure_table(self) -> None:
        self.db.execute(
            """
            CREATE TABLE IF NOT EXISTS fc_feedback (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                transaction_id TEXT NOT NULL,
                suggested_category TEXT,
                actual_category TEXT NOT NULL,
                confidence REAL,
                feedback_kind TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )

    async def get_recent_feedback(self, user_id: str, limit: Optional[int] = None) -> List[FeedbackRecord]:
        sql = "SELECT * FROM fc_feedback WHERE user_id = ? ORDER BY created_at DESC, rowid DESC"
        params: tuple = (user_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (user_id, limit)
        rows = await asyncio.to_thread(self.db.fetchall_dict, sql, params)
        return [FeedbackRecord.model_validate(row) for row in rows]

    async def save(self, record: FeedbackRecord) -> FeedbackRecord:
        # append-only: an existing id is an error, never an update
        await asyncio.to_thread(
            self.db.execute,
            """
            INSERT INTO fc_feedback
                (id, user_id, transaction_id, suggested_category, actual_category, confidence, feedback_kind, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.user_id,
                record.transaction_id,
                record.suggested_category,
                record.actual_category,
                record.confidence,
                record.feedback_kind.value,
                record.created_at.isoformat(),
            ),
        )
        return record


class SQLiteMatchStore:
    """
    Match records with a UNIQUE (invoice_id, transaction_id) constraint.

    The constraint is what stops two concurrent confirms of the same pair;
    a violation surfaces as DuplicateMatchError.
    """

    def __init__(self, db_path: Optional[str] = None) -> None:
        self.db = DB(sqlite_path=db_path or _default_path())
        self._ensure_table()

    def _ensure_table(self) -> None:
        self.db.execute(
            """
            CREATE TABLE IF NOT EXISTS fc_invoice_transaction_matches (
                id TEXT PRIMARY KEY,
                invoice_id TEXT NOT NULL,
                transaction_id TEXT NOT NULL,
                match_score REAL NOT NULL,
                match_confidence TEXT NOT NULL,
                matched_by TEXT NOT NULL,
                matched_by_user_id TEXT,
                notes TEXT,
                metadata TEXT,
                matched_at TEXT NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE (invoice_id, transaction_id)
            )
            """
        )

    async def exists(self, invoice_id: str, transaction_id: str) -> bool:
        return await self.find_by_pair(invoice_id, transaction_id) is not None

    async def create(self, match: InvoiceTransactionMatch) -> InvoiceTransactionMatch:
        try:
            await asyncio.to_thread(
                self.db.execute,
                """
                INSERT INTO fc_invoice_transaction_matches
                    (id, invoice_id, transaction_id, match_score, match_confidence, matched_by,
                     matched_by_user_id, notes, metadata, matched_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    match.id,
                    match.invoice_id,
                    match.transaction_id,
                    match.match_score,
                    match.match_confidence.value,
                    match.matched_by.value,
                    match.matched_by_user_id,
                    match.notes,
                    json.dumps(match.metadata),
                    match.matched_at.isoformat(),
                    match.created_at.isoformat(),
                ),
            )
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" in str(exc) and "invoice_id" in str(exc):
                raise DuplicateMatchError(match.invoice_id, match.transaction_id) from exc
            raise
        return match

    async def find_by_id(self, match_id: str) -> Optional[InvoiceTransactionMatch]:
        row = await asyncio.to_thread(
            self.db.fetchone_dict, "SELECT * FROM fc_invoice_transaction_matches WHERE id = ?", (match_id,)
        )
        return _row_to_match(row) if row else None

    async def find_by_pair(self, invoice_id: str, transaction_id: str) -> Optional[InvoiceTransactionMatch]:
        row = await asyncio.to_thread(
            self.db.fetchone_dict,
            "SELECT * FROM fc_invoice_transaction_matches WHERE invoice_id = ? AND transaction_id = ?",
            (invoice_id, transaction_id),
        )
        return _row_to_match(row) if row else None

    async def find_by_invoice_id(self, invoice_id: str) -> List[InvoiceTransactionMatch]:
        rows = await asyncio.to_thread(
            self.db.fetchall_dict,
            "SELECT * FROM fc_invoice_transaction_matches WHERE invoice_id = ? ORDER BY created_at",
            (invoice_id,),
        )
        return [_row_to_match(row) for row in rows]

    async def find_by_transaction_id(self, transaction_id: str) -> List[InvoiceTransactionMatch]:
        rows = await asyncio.to_thread(
            self.db.fetchall_dict,
            "SELECT * FROM fc_invoice_transaction_matches WHERE transaction_id = ? ORDER BY created_at",
            (transaction_id,),
        )
        return [_row_to_match(row) for row in rows]

    async def delete(self, match_id: str) -> None:
        await asyncio.to_thread(
            self.db.execute, "DELETE FROM fc_invoice_transaction_matches WHERE id = ?", (match_id,)
        )


def _load_json(raw: Any) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return value if isinstance(value, dict) else {}


def _row_to_rule(row: Dict[str, Any]) -> PatternRule:
    data = dict(row)
    data["is_active"] = bool(data.get("is_active"))
    data["metadata"] = _load_json(data.get("metadata"))
    return PatternRule.model_validate(data)


def _row_to_match(row: Dict[str, Any]) -> InvoiceTransactionMatch:
    data = dict(row)
    data["metadata"] = _load_json(data.get("metadata"))
    return InvoiceTransactionMatch.model_validate(data)
