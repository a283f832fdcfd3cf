"""
store.py — Relational Persistence for Artists and Hourly Metrics
=================================================================
Three tables, all managed through SQLAlchemy:

``artists``                        — internal artists and their Chartmetric link
``hourly_artist_metrics``          — one listener snapshot per artist per hour
``hourly_artist_revenue_estimate`` — one revenue estimate per artist per hour

Both hourly tables have a composite primary key ``(artist_id, hour_bucket)``
and are written with ``INSERT … ON CONFLICT DO UPDATE``, so running a sync
twice in the same hour overwrites the first row instead of adding a second.
Concurrent writers for the same key converge on whichever lands last.
"""

from __future__ import annotations

import datetime
import pathlib
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterator, List

import pandas as pd
from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    create_engine,
    func,
    select,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from artistsync.errors import NotFoundError, StoreError
from artistsync.utils import get_logger, utcnow

logger = get_logger("artistsync.store")

METRIC_SOURCE = "chartmetric"


def _naive_utcnow() -> datetime.datetime:
    return utcnow().replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class Artist(Base):
    __tablename__ = "artists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), default="")
    upstream_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_naive_utcnow)


class HourlyArtistMetric(Base):
    __tablename__ = "hourly_artist_metrics"

    artist_id: Mapped[int] = mapped_column(ForeignKey("artists.id"), primary_key=True)
    hour_bucket: Mapped[datetime.datetime] = mapped_column(DateTime, primary_key=True)
    listeners_total: Mapped[int] = mapped_column(BigInteger, default=0)
    streams_total: Mapped[int] = mapped_column(BigInteger, default=0)
    top_country_code: Mapped[str | None] = mapped_column(String(8), nullable=True)
    source: Mapped[str] = mapped_column(String(32), default=METRIC_SOURCE)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_naive_utcnow)


class HourlyRevenueEstimate(Base):
    __tablename__ = "hourly_artist_revenue_estimate"

    artist_id: Mapped[int] = mapped_column(ForeignKey("artists.id"), primary_key=True)
    hour_bucket: Mapped[datetime.datetime] = mapped_column(DateTime, primary_key=True)
    estimated_usd: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=Decimal("0"))
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_naive_utcnow)


def create_store_engine(database_url: str) -> Engine:
    """
    Build an engine for ``database_url``.

    SQLite connections are shared across the scheduler thread and the
    caller's thread; in-memory databases need a single static connection
    or every checkout would see an empty database.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)

    connect_args = {"check_same_thread": False}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url, connect_args=connect_args, poolclass=StaticPool,
        )

    db_path = database_url.split("///", 1)[-1]
    if db_path:
        pathlib.Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, connect_args=connect_args)


class ArtistStore:
    """
    Artist registry plus the two hourly fact tables.

    Every public method opens its own session (one transaction) and
    closes it before returning; database failures surface as
    ``StoreError``.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str) -> "ArtistStore":
        store = cls(create_store_engine(database_url))
        store.create_schema()
        return store

    def create_schema(self) -> None:
        try:
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise StoreError(f"Schema creation failed: {exc}") from exc

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Store operation failed: %s", exc)
            raise StoreError(str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _insert(self):
        """Dialect-specific INSERT that supports ``on_conflict_do_update``."""
        if self._engine.dialect.name == "postgresql":
            return postgresql.insert
        return sqlite.insert

    # ── Artists ───────────────────────────────────────────────────────

    def add_artist(
        self,
        name: str,
        upstream_id: str | None = None,
        is_active: bool = True,
    ) -> Artist:
        with self._transaction() as session:
            artist = Artist(name=name, upstream_id=upstream_id, is_active=is_active)
            session.add(artist)
            session.flush()
            logger.info("Registered artist #%d '%s'", artist.id, name)
            return artist

    def get_artist(self, artist_id: int) -> Artist:
        """Return the artist or raise ``NotFoundError``."""
        with self._transaction() as session:
            artist = session.get(Artist, artist_id)
            if artist is None:
                raise NotFoundError(f"Unknown internal artist id {artist_id}")
            return artist

    def list_active_artists(self) -> List[Artist]:
        with self._transaction() as session:
            rows = session.scalars(
                select(Artist).where(Artist.is_active.is_(True)).order_by(Artist.id)
            )
            return list(rows)

    def set_upstream_id(self, artist_id: int, upstream_id: str) -> None:
        with self._transaction() as session:
            artist = session.get(Artist, artist_id)
            if artist is None:
                raise NotFoundError(f"Unknown internal artist id {artist_id}")
            artist.upstream_id = upstream_id

    def set_active(self, artist_id: int, is_active: bool) -> None:
        with self._transaction() as session:
            artist = session.get(Artist, artist_id)
            if artist is None:
                raise NotFoundError(f"Unknown internal artist id {artist_id}")
            artist.is_active = is_active

    # ── Hourly facts ──────────────────────────────────────────────────

    def upsert_hourly(
        self,
        artist_id: int,
        hour_bucket: datetime.datetime,
        listeners_total: int,
        streams_total: int,
        top_country_code: str | None,
        estimated_usd: Decimal,
    ) -> None:
        """Write the snapshot and its revenue estimate in one transaction."""
        insert = self._insert()
        now = _naive_utcnow()

        metric_stmt = insert(HourlyArtistMetric).values(
            artist_id=artist_id,
            hour_bucket=hour_bucket,
            listeners_total=listeners_total,
            streams_total=streams_total,
            top_country_code=top_country_code,
            source=METRIC_SOURCE,
            updated_at=now,
        )
        metric_stmt = metric_stmt.on_conflict_do_update(
            index_elements=["artist_id", "hour_bucket"],
            set_={
                "listeners_total": metric_stmt.excluded.listeners_total,
                "streams_total": metric_stmt.excluded.streams_total,
                "top_country_code": metric_stmt.excluded.top_country_code,
                "source": metric_stmt.excluded.source,
                "updated_at": metric_stmt.excluded.updated_at,
            },
        )

        revenue_stmt = insert(HourlyRevenueEstimate).values(
            artist_id=artist_id,
            hour_bucket=hour_bucket,
            estimated_usd=estimated_usd,
            updated_at=now,
        )
        revenue_stmt = revenue_stmt.on_conflict_do_update(
            index_elements=["artist_id", "hour_bucket"],
            set_={
                "estimated_usd": revenue_stmt.excluded.estimated_usd,
                "updated_at": revenue_stmt.excluded.updated_at,
            },
        )

        with self._transaction() as session:
            session.execute(metric_stmt)
            session.execute(revenue_stmt)

    def get_snapshots(self, artist_id: int) -> List[HourlyArtistMetric]:
        with self._transaction() as session:
            rows = session.scalars(
                select(HourlyArtistMetric)
                .where(HourlyArtistMetric.artist_id == artist_id)
                .order_by(HourlyArtistMetric.hour_bucket)
            )
            return list(rows)

    def get_estimates(self, artist_id: int) -> List[HourlyRevenueEstimate]:
        with self._transaction() as session:
            rows = session.scalars(
                select(HourlyRevenueEstimate)
                .where(HourlyRevenueEstimate.artist_id == artist_id)
                .order_by(HourlyRevenueEstimate.hour_bucket)
            )
            return list(rows)

    # ── Reporting ─────────────────────────────────────────────────────

    def latest_summary(self) -> pd.DataFrame:
        """
        Latest snapshot and estimate per artist, one row each.

        Columns: artist_id, name, upstream_id, is_active, hour_bucket,
        listeners_total, estimated_usd.  Artists never synced have NaN
        metrics.
        """
        columns = [
            "artist_id", "name", "upstream_id", "is_active",
            "hour_bucket", "listeners_total", "estimated_usd",
        ]
        stmt = (
            select(
                Artist.id.label("artist_id"),
                Artist.name,
                Artist.upstream_id,
                Artist.is_active,
                HourlyArtistMetric.hour_bucket,
                HourlyArtistMetric.listeners_total,
                HourlyRevenueEstimate.estimated_usd,
            )
            .select_from(Artist)
            .outerjoin(HourlyArtistMetric, HourlyArtistMetric.artist_id == Artist.id)
            .outerjoin(
                HourlyRevenueEstimate,
                (HourlyRevenueEstimate.artist_id == HourlyArtistMetric.artist_id)
                & (HourlyRevenueEstimate.hour_bucket == HourlyArtistMetric.hour_bucket),
            )
        )
        try:
            with self._engine.connect() as conn:
                df = pd.read_sql(stmt, conn)
        except SQLAlchemyError as exc:
            raise StoreError(f"Summary query failed: {exc}") from exc

        if df.empty:
            return pd.DataFrame(columns=columns)

        df = (
            df.sort_values(["artist_id", "hour_bucket"], na_position="first")
            .drop_duplicates(subset=["artist_id"], keep="last")
            .reset_index(drop=True)
        )
        return df[columns]

    def describe(self) -> Dict[str, Any]:
        """Row counts per table (used by ``main.py report``)."""
        with self._transaction() as session:
            return {
                model.__tablename__: session.scalar(
                    select(func.count()).select_from(model)
                )
                for model in (Artist, HourlyArtistMetric, HourlyRevenueEstimate)
            }
