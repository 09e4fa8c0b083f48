from __future__ import annotations

import json
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Iterator

from ..errors import NotFoundError, StoreError
from ..logging import logger
from ..models.item import ReviewItem
from ..models.story import DailyStory
from .base import (
    ItemMutator,
    ItemPredicate,
    ReviewItemStore,
    SortOrder,
    StoryMutator,
    StoryStore,
    StudyDayStore,
    check_mutation,
    sync_mastery,
)

_ITEM_COLUMNS = (
    "id, term, translation, language, note, created_at, last_reviewed_at, "
    "review_count, mastery_level, is_mastered, next_review_at, deleted_at"
)

_STORY_COLUMNS = (
    "id, day, created_at, language, title, content, word_ids_json, questions_json, "
    "quiz_completed, quiz_score"
)

_ORDER_BY = {
    SortOrder.created_desc: "created_at DESC, id DESC",
    SortOrder.created_asc: "created_at ASC, id ASC",
    # NULL を先頭に（最も期限超過として扱う）
    SortOrder.next_review_asc: "next_review_at IS NOT NULL, next_review_at ASC, id ASC",
}


def _to_iso(value: datetime | None) -> str | None:
    """UTC に正規化して ISO8601 文字列にする（文字列比較で時系列順になるように）。"""

    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class SQLiteReviewItemStore(ReviewItemStore, StudyDayStore, StoryStore):
    """SQLite-backed persistence for review items, study days and daily stories.

    - 削除は deleted_at を記録する論理削除（墓標）。既定のクエリからは除外
    - update は BEGIN IMMEDIATE で行をロックし、読み出し→変換→書き込みを一括で行う
    - 書き込み成功後に変更通知を発行する（物語テーブルへの書き込みは対象外）
    """

    def __init__(self, db_path: str) -> None:
        super().__init__()
        self.db_path = db_path
        self._uri = False
        self._keeper: sqlite3.Connection | None = None
        if db_path == ":memory:":
            # 接続ごとに別 DB にならないよう共有キャッシュの名前付きメモリ DB を使い、
            # 最低1本の接続を保持して内容を生かしておく
            self.db_path = f"file:lingolog-{uuid.uuid4().hex}?mode=memory&cache=shared"
            self._uri = True
            self._keeper = sqlite3.connect(self.db_path, uri=True, check_same_thread=False)
        self._ensure_dirs()
        self._init_db()

    def close(self) -> None:
        if self._keeper is not None:
            self._keeper.close()
            self._keeper = None

    # --- low-level helpers ---
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            timeout=10.0,
            isolation_level=None,
            check_same_thread=False,
            uri=self._uri,
        )
        conn.row_factory = sqlite3.Row
        with conn:  # autocommit on pragma
            conn.execute("pragma journal_mode=WAL;")
            conn.execute("pragma foreign_keys=ON;")
        return conn

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StoreError(f"failed to open {self.db_path}: {exc}") from exc
        try:
            yield conn
        except sqlite3.Error as exc:
            logger.error(
                "sqlite_store_error",
                db_path=self.db_path,
                error_type=type(exc).__name__,
                error=str(exc)[:200],
            )
            raise StoreError(str(exc)) from exc
        finally:
            conn.close()

    def _ensure_dirs(self) -> None:
        if self._uri:
            return
        p = Path(self.db_path)
        if p.parent and not p.parent.exists():
            p.parent.mkdir(parents=True, exist_ok=True)

    def _init_db(self) -> None:
        with self._conn() as conn:
            with conn:
                self._ensure_review_items_table(conn)
                self._ensure_study_days_table(conn)
                self._ensure_stories_table(conn)

    def _ensure_review_items_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS review_items (
                id TEXT PRIMARY KEY,
                term TEXT NOT NULL,
                translation TEXT NOT NULL DEFAULT '',
                language TEXT NOT NULL DEFAULT '',
                note TEXT,
                created_at TEXT NOT NULL,
                last_reviewed_at TEXT,
                review_count INTEGER NOT NULL DEFAULT 0,
                mastery_level INTEGER NOT NULL DEFAULT 0,
                is_mastered INTEGER NOT NULL DEFAULT 0,
                next_review_at TEXT,
                deleted_at TEXT
            );
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_review_items_created_at ON review_items(created_at);"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_review_items_due ON review_items(is_mastered, next_review_at);"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_review_items_language ON review_items(language);"
        )

    def _ensure_study_days_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS study_days (
                day TEXT PRIMARY KEY,
                recorded_at TEXT NOT NULL
            );
            """
        )

    def _ensure_stories_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS stories (
                id TEXT PRIMARY KEY,
                day TEXT NOT NULL,
                created_at TEXT NOT NULL,
                language TEXT NOT NULL,
                title TEXT NOT NULL,
                content TEXT NOT NULL,
                word_ids_json TEXT NOT NULL DEFAULT '[]',
                questions_json TEXT NOT NULL DEFAULT '[]',
                quiz_completed INTEGER NOT NULL DEFAULT 0,
                quiz_score INTEGER NOT NULL DEFAULT 0
            );
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_stories_language_day ON stories(language, day);"
        )

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> ReviewItem:
        return ReviewItem(
            id=row["id"],
            term=row["term"],
            translation=row["translation"] or "",
            language=row["language"] or "",
            note=row["note"],
            created_at=_from_iso(row["created_at"]),
            last_reviewed_at=_from_iso(row["last_reviewed_at"]),
            review_count=int(row["review_count"] or 0),
            mastery_level=int(row["mastery_level"] or 0),
            next_review_at=_from_iso(row["next_review_at"]),
            deleted_at=_from_iso(row["deleted_at"]),
        )

    @staticmethod
    def _item_params(item: ReviewItem) -> tuple:
        return (
            item.term,
            item.translation,
            item.language,
            item.note,
            _to_iso(item.created_at),
            _to_iso(item.last_reviewed_at),
            int(item.review_count),
            int(item.mastery_level),
            1 if item.is_mastered else 0,
            _to_iso(item.next_review_at),
            item.id,
        )

    def _fetch_live(self, conn: sqlite3.Connection, item_id: str) -> ReviewItem:
        row = conn.execute(
            f"SELECT {_ITEM_COLUMNS} FROM review_items WHERE id = ? AND deleted_at IS NULL;",
            (item_id,),
        ).fetchone()
        if row is None:
            raise NotFoundError(item_id)
        return self._row_to_item(row)

    # --- public API ---
    def create(self, item: ReviewItem) -> str:
        item = sync_mastery(item)
        with self._conn() as conn:
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO review_items(
                            term, translation, language, note, created_at, last_reviewed_at,
                            review_count, mastery_level, is_mastered, next_review_at, id
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                        """,
                        self._item_params(item),
                    )
            except sqlite3.IntegrityError as exc:
                raise StoreError(f"review item {item.id} already exists") from exc
        self._emit_change("create")
        return item.id

    def get(self, item_id: str) -> ReviewItem:
        with self._conn() as conn:
            return self._fetch_live(conn, item_id)

    def update(self, item_id: str, mutator: ItemMutator) -> ReviewItem:
        with self._conn() as conn:
            # BEGIN IMMEDIATE to avoid concurrent writers on the same row
            conn.execute("BEGIN IMMEDIATE;")
            try:
                current = self._fetch_live(conn, item_id)
                updated = check_mutation(current, mutator(current))
                conn.execute(
                    """
                    UPDATE review_items
                    SET term = ?, translation = ?, language = ?, note = ?, created_at = ?,
                        last_reviewed_at = ?, review_count = ?, mastery_level = ?,
                        is_mastered = ?, next_review_at = ?
                    WHERE id = ?;
                    """,
                    self._item_params(updated),
                )
                conn.execute("COMMIT;")
            except BaseException:
                conn.execute("ROLLBACK;")
                raise
        self._emit_change("update")
        return updated

    def delete(self, item_id: str) -> None:
        with self._conn() as conn:
            with conn:
                cur = conn.execute(
                    "UPDATE review_items SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL;",
                    (_to_iso(datetime.now(UTC)), item_id),
                )
                if cur.rowcount == 0:
                    raise NotFoundError(item_id)
        self._emit_change("delete")

    def query_all(
        self,
        sort: SortOrder | None = SortOrder.created_desc,
        predicate: ItemPredicate | None = None,
        *,
        language: str | None = None,
        include_deleted: bool = False,
    ) -> list[ReviewItem]:
        clauses: list[str] = []
        params: list[object] = []
        if not include_deleted:
            clauses.append("deleted_at IS NULL")
        if language is not None:
            clauses.append("language = ?")
            params.append(language)
        sql = f"SELECT {_ITEM_COLUMNS} FROM review_items"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        if sort is not None:
            sql += f" ORDER BY {_ORDER_BY[sort]}"
        with self._conn() as conn:
            rows = conn.execute(sql + ";", params).fetchall()
        items = [self._row_to_item(row) for row in rows]
        if predicate is not None:
            items = [it for it in items if predicate(it)]
        return items

    def query_due(self, at: datetime) -> list[ReviewItem]:
        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT {_ITEM_COLUMNS} FROM review_items
                WHERE deleted_at IS NULL
                  AND is_mastered = 0
                  AND (next_review_at IS NULL OR next_review_at <= ?)
                ORDER BY {_ORDER_BY[SortOrder.next_review_asc]};
                """,
                (_to_iso(at),),
            ).fetchall()
        return [self._row_to_item(row) for row in rows]

    def purge_deleted(self) -> int:
        """Physically remove tombstoned rows and return how many were dropped."""

        with self._conn() as conn:
            with conn:
                cur = conn.execute("DELETE FROM review_items WHERE deleted_at IS NOT NULL;")
                return cur.rowcount

    # --- study days ---
    def load_study_days(self) -> set[date]:
        with self._conn() as conn:
            rows = conn.execute("SELECT day FROM study_days;").fetchall()
        return {date.fromisoformat(row["day"]) for row in rows}

    def add_study_day(self, day: date) -> bool:
        with self._conn() as conn:
            with conn:
                cur = conn.execute(
                    "INSERT OR IGNORE INTO study_days(day, recorded_at) VALUES (?, ?);",
                    (day.isoformat(), _to_iso(datetime.now(UTC))),
                )
                return cur.rowcount > 0

    # --- stories ---
    @staticmethod
    def _row_to_story(row: sqlite3.Row) -> DailyStory:
        try:
            word_ids = json.loads(row["word_ids_json"] or "[]")
            questions = json.loads(row["questions_json"] or "[]")
        except json.JSONDecodeError as exc:
            raise StoreError(f"corrupt story payload for {row['id']}: {exc}") from exc
        return DailyStory(
            id=row["id"],
            day=date.fromisoformat(row["day"]),
            created_at=_from_iso(row["created_at"]),
            language=row["language"],
            title=row["title"],
            content=row["content"],
            word_ids=word_ids,
            questions=questions,
            quiz_completed=bool(row["quiz_completed"]),
            quiz_score=int(row["quiz_score"] or 0),
        )

    @staticmethod
    def _story_params(story: DailyStory) -> tuple:
        return (
            story.day.isoformat(),
            _to_iso(story.created_at),
            story.language,
            story.title,
            story.content,
            json.dumps(story.word_ids, ensure_ascii=False),
            json.dumps(
                [q.model_dump(by_alias=True) for q in story.questions], ensure_ascii=False
            ),
            1 if story.quiz_completed else 0,
            int(story.quiz_score),
            story.id,
        )

    def _fetch_story(self, conn: sqlite3.Connection, story_id: str) -> DailyStory:
        row = conn.execute(
            f"SELECT {_STORY_COLUMNS} FROM stories WHERE id = ?;", (story_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(story_id, kind="story")
        return self._row_to_story(row)

    def save_story(self, story: DailyStory) -> str:
        with self._conn() as conn:
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO stories(
                            day, created_at, language, title, content, word_ids_json,
                            questions_json, quiz_completed, quiz_score, id
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                        """,
                        self._story_params(story),
                    )
            except sqlite3.IntegrityError as exc:
                raise StoreError(f"story {story.id} already exists") from exc
        return story.id

    def get_story(self, story_id: str) -> DailyStory:
        with self._conn() as conn:
            return self._fetch_story(conn, story_id)

    def update_story(self, story_id: str, mutator: StoryMutator) -> DailyStory:
        with self._conn() as conn:
            conn.execute("BEGIN IMMEDIATE;")
            try:
                updated = mutator(self._fetch_story(conn, story_id))
                if updated.id != story_id:
                    raise StoreError(f"mutator changed immutable id of story {story_id}")
                conn.execute(
                    """
                    UPDATE stories
                    SET day = ?, created_at = ?, language = ?, title = ?, content = ?,
                        word_ids_json = ?, questions_json = ?, quiz_completed = ?, quiz_score = ?
                    WHERE id = ?;
                    """,
                    self._story_params(updated),
                )
                conn.execute("COMMIT;")
            except BaseException:
                conn.execute("ROLLBACK;")
                raise
        return updated

    def delete_story(self, story_id: str) -> None:
        with self._conn() as conn:
            with conn:
                cur = conn.execute("DELETE FROM stories WHERE id = ?;", (story_id,))
                if cur.rowcount == 0:
                    raise NotFoundError(story_id, kind="story")

    def query_stories(
        self,
        *,
        language: str | None = None,
        day: date | None = None,
        limit: int | None = None,
    ) -> list[DailyStory]:
        clauses: list[str] = []
        params: list[object] = []
        if language is not None:
            clauses.append("language = ?")
            params.append(language)
        if day is not None:
            clauses.append("day = ?")
            params.append(day.isoformat())
        sql = f"SELECT {_STORY_COLUMNS} FROM stories"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY day DESC, created_at DESC, rowid DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        with self._conn() as conn:
            rows = conn.execute(sql + ";", params).fetchall()
        return [self._row_to_story(row) for row in rows]
