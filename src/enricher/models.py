"""
SQLAlchemy ORM Models for the Episode Sink

One row per (series, season, episode) triple:

    id        auto-increment identity
    serieId   provider series id, e.g. "tt0460681"
    season    season number as reported by the provider
    episode   episode number within the season

The composite unique constraint is what makes a plain re-insert of the same
series fail; see EpisodeSink for how rewrites are handled.
"""

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class EpisodeRow(Base):
    """An episode of a resolved series, as persisted in the ``episodes`` table."""

    __tablename__ = "episodes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Column keeps the camelCase name consumers of the table already query by
    serie_id: Mapped[str] = mapped_column(
        "serieId",
        String(32),
        nullable=False,
        index=True,
        comment="Provider series id extracted from /title/<id>/",
    )

    season: Mapped[int] = mapped_column(Integer, nullable=False)

    episode: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("serieId", "season", "episode", name="uq_episodes_serie_season_episode"),
        {"comment": "Flattened episode list per series"},
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "serieId": self.serie_id,
            "season": self.season,
            "episode": self.episode,
        }

    def __repr__(self) -> str:
        return (
            f"<EpisodeRow(id={self.id}, serie_id={self.serie_id}, "
            f"season={self.season}, episode={self.episode})>"
        )
