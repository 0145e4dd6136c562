# @TASK P2-T2.3 - Rating, statistics and readiness tests
# @TEST tests/test_dataset_service.py

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from aitelier.errors import NotFound, PreconditionFailed
from aitelier.services import dataset_service
from aitelier.services.dataset_service import assess_readiness, summarize_examples


def _row(rating, split=None):
    return SimpleNamespace(rating=rating, split=split)


class TestReadiness:
    def test_ready(self):
        assert assess_readiness(20, 10, 2).status == "ready"
        assert assess_readiness(20, 10, 2).needed == []

    def test_almost_by_quality(self):
        readiness = assess_readiness(12, 0, 0)
        assert readiness.status == "almost"
        assert "8 more quality examples" in readiness.needed

    def test_almost_by_both_splits(self):
        assert assess_readiness(3, 1, 1).status == "almost"

    def test_not_ready(self):
        readiness = assess_readiness(2, 3, 0)
        assert readiness.status == "not_ready"
        assert len(readiness.needed) == 3


class TestSummarize:
    def test_distribution_and_split_counts(self):
        rows = [
            _row(9, "train"),
            _row(9, "val"),
            _row(8, "train"),
            _row(3, None),
            _row(None, None),
        ]

        stats = summarize_examples(rows, quality_threshold=8)

        assert stats["total_examples"] == 5
        assert stats["rated_count"] == 4
        assert stats["quality_count"] == 3
        assert len(stats["distribution"]) == 10
        nine = stats["distribution"][8]
        assert nine == {"rating": 9, "count": 2, "train_count": 1, "val_count": 1}
        assert stats["split_stats"] == {"train_count": 2, "val_count": 1, "unassigned_count": 2}
        assert stats["readiness"]["status"] == "almost"

    def test_empty_project(self):
        stats = summarize_examples([], quality_threshold=8)
        assert stats["total_examples"] == 0
        assert stats["readiness"]["status"] == "not_ready"


class TestRateExample:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 11])
    async def test_out_of_range(self, mock_db, rating):
        with pytest.raises(PreconditionFailed):
            await dataset_service.rate_example(mock_db, 1, rating)

        mock_db.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_example(self, mock_db):
        mock_db.get = AsyncMock(return_value=None)

        with pytest.raises(NotFound):
            await dataset_service.rate_example(mock_db, 1, 5)

    @pytest.mark.asyncio
    async def test_sets_rating_and_rewrite(self, mock_db):
        example = SimpleNamespace(rating=None, rated_by=None, rated_at=None, rewrite="old")
        mock_db.get = AsyncMock(return_value=example)

        await dataset_service.rate_example(mock_db, 1, 9, rewrite="new", rated_by="u1")

        assert example.rating == 9
        assert example.rewrite == "new"
        assert example.rated_by == "u1"
        assert example.rated_at is not None
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rewrite_untouched_when_omitted(self, mock_db):
        example = SimpleNamespace(rating=4, rated_by=None, rated_at=None, rewrite="keep")
        mock_db.get = AsyncMock(return_value=example)

        await dataset_service.rate_example(mock_db, 1, 6)

        assert example.rewrite == "keep"


class TestStatsAndExport:
    @pytest.mark.asyncio
    async def test_stats_use_project_threshold(self, mock_db):
        mock_db.get = AsyncMock(return_value=SimpleNamespace(id=1, quality_threshold=5))
        result = MagicMock()
        result.all.return_value = [_row(5, "train"), _row(4, "val")]
        mock_db.execute = AsyncMock(return_value=result)
        mock_db.scalar = AsyncMock(return_value=2)

        stats = await dataset_service.get_dataset_stats(mock_db, 1)

        assert stats["quality_count"] == 1
        assert stats["models_trained"] == 2

    @pytest.mark.asyncio
    async def test_stats_without_completed_runs(self, mock_db):
        mock_db.get = AsyncMock(return_value=SimpleNamespace(id=1, quality_threshold=8))
        result = MagicMock()
        result.all.return_value = []
        mock_db.execute = AsyncMock(return_value=result)
        mock_db.scalar = AsyncMock(return_value=None)

        stats = await dataset_service.get_dataset_stats(mock_db, 1)

        assert stats["models_trained"] == 0
        count_sql = str(
            mock_db.scalar.await_args.args[0].compile(
                dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}
            )
        )
        assert "training_runs.status = 'completed'" in count_sql

    @pytest.mark.asyncio
    async def test_add_example(self, mock_db):
        mock_db.get = AsyncMock(return_value=SimpleNamespace(id=1))

        example = await dataset_service.add_example(mock_db, 1, "in", "out", created_by="u1", metadata={"src": "cli"})

        mock_db.add.assert_called_once_with(example)
        assert example.input == "in"
        assert example.metadata_ == {"src": "cli"}

    @pytest.mark.asyncio
    async def test_export_unknown_project(self, mock_db):
        mock_db.get = AsyncMock(return_value=None)

        with pytest.raises(NotFound):
            await dataset_service.export_dataset(mock_db, 1)


# ---------------------------------------------------------------------------
# Rating queue
# ---------------------------------------------------------------------------


def _last_sql(mock_db) -> str:
    """Helper: SQL of the statement last sent to ``db.execute``, values inlined."""
    statement = mock_db.execute.await_args.args[0]
    return str(statement.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}))


def _listing_db(mock_db, rows=(), quality_threshold=7):
    mock_db.get = AsyncMock(return_value=SimpleNamespace(id=1, quality_threshold=quality_threshold))
    result = MagicMock()
    result.scalars.return_value.all.return_value = list(rows)
    mock_db.execute = AsyncMock(return_value=result)
    return mock_db


class TestListExamples:
    @pytest.mark.asyncio
    async def test_defaults_to_unrated_newest_first(self, mock_db):
        rows = [SimpleNamespace(id=2), SimpleNamespace(id=1)]
        _listing_db(mock_db, rows)

        examples = await dataset_service.list_examples(mock_db, 1)

        assert examples == rows
        sql = _last_sql(mock_db)
        assert "examples.project_id = 1" in sql
        assert "examples.rating IS NULL" in sql
        assert sql.endswith("ORDER BY examples.created_at DESC, examples.id DESC")

    @pytest.mark.asyncio
    async def test_all_applies_no_rating_condition(self, mock_db):
        _listing_db(mock_db)

        await dataset_service.list_examples(mock_db, 1, "all")

        sql = _last_sql(mock_db)
        assert "IS NULL" not in sql
        assert "IS NOT NULL" not in sql

    @pytest.mark.asyncio
    async def test_below_threshold_uses_project_threshold(self, mock_db):
        _listing_db(mock_db, quality_threshold=7)

        await dataset_service.list_examples(mock_db, 1, "below-threshold")

        sql = _last_sql(mock_db)
        assert "examples.rating IS NOT NULL" in sql
        assert "examples.rating < 7" in sql

    @pytest.mark.asyncio
    async def test_below_threshold_falls_back_to_default(self, mock_db):
        _listing_db(mock_db, quality_threshold=None)

        await dataset_service.list_examples(mock_db, 1, "below-threshold")

        assert "examples.rating < 8" in _last_sql(mock_db)

    @pytest.mark.asyncio
    async def test_needs_rewrite_is_rated_without_rewrite(self, mock_db):
        _listing_db(mock_db)

        await dataset_service.list_examples(mock_db, 1, "needs-rewrite")

        sql = _last_sql(mock_db)
        assert "examples.rating IS NOT NULL" in sql
        assert "examples.rewrite IS NULL" in sql
        assert "examples.rating <" not in sql

    @pytest.mark.parametrize(
        "sort, order_by",
        [
            ("oldest", "ORDER BY examples.created_at ASC, examples.id ASC"),
            ("rating-asc", "ORDER BY examples.rating ASC NULLS LAST, examples.id ASC"),
            ("rating-desc", "ORDER BY examples.rating DESC NULLS LAST, examples.id DESC"),
            ("random", "ORDER BY random()"),
        ],
    )
    @pytest.mark.asyncio
    async def test_sort_orders(self, mock_db, sort, order_by):
        _listing_db(mock_db)

        await dataset_service.list_examples(mock_db, 1, "all", sort)

        assert _last_sql(mock_db).endswith(order_by)

    @pytest.mark.parametrize("example_filter, sort", [("starred", "newest"), ("all", "alphabetical")])
    @pytest.mark.asyncio
    async def test_unknown_filter_or_sort(self, mock_db, example_filter, sort):
        _listing_db(mock_db)

        with pytest.raises(PreconditionFailed):
            await dataset_service.list_examples(mock_db, 1, example_filter, sort)

        mock_db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_project(self, mock_db):
        mock_db.get = AsyncMock(return_value=None)

        with pytest.raises(NotFound):
            await dataset_service.list_examples(mock_db, 1)
