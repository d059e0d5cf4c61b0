from datetime import date, datetime, timedelta, timezone

import pytest

from worklog_api.query import ListQuery, apply, matches, parse_tags, total_pages


def entity(title="t", description="d", tags=(), day=date(2024, 1, 1), created=None):
    created = created or datetime(2024, 1, 1, tzinfo=timezone.utc)
    return {
        "id": title,
        "title": title,
        "description": description,
        "tags": list(tags),
        "date": day,
        "time": "10:00",
        "priority": "medium",
        "status": "completed",
        "user_id": None,
        "created_at": created,
        "updated_at": created,
    }


class TestListQuery:
    def test_defaults(self):
        q = ListQuery()
        assert (q.page, q.limit, q.sort_by, q.descending) == (1, 10, "date", True)
        assert q.offset == 0

    def test_offset(self):
        assert ListQuery(page=3, limit=25).offset == 50

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"page": 0},
            {"page": -3},
            {"limit": 0},
            {"limit": -1},
            {"limit": 101},
            {"sort_by": "hashed_password"},
            {"date_from": date(2024, 2, 1), "date_to": date(2024, 1, 1)},
        ],
    )
    def test_out_of_bounds_rejected(self, kwargs):
        with pytest.raises(ValueError):
            ListQuery(**kwargs)

    def test_search_terms(self):
        assert ListQuery(search="  Fix   the BUG ").search_terms == ["fix", "the", "bug"]
        assert ListQuery().search_terms == []


class TestParseTags:
    def test_split_trim_lowercase_dedupe(self):
        assert parse_tags("Code, review,,CODE , bug-fix") == ("code", "review", "bug-fix")

    def test_empty(self):
        assert parse_tags(None) == ()
        assert parse_tags("") == ()
        assert parse_tags(" , ") == ()


def test_total_pages_is_ceiling_division():
    for limit in range(1, 12):
        for total in range(0, 40):
            assert total_pages(total, limit) == -(-total // limit)


class TestMatchesAndApply:
    def test_no_filters_match_everything(self):
        assert matches(entity(), ListQuery())

    def test_tag_intersection(self):
        q = ListQuery(tags=("code", "review"))
        assert matches(entity(tags=["review"]), q)
        assert not matches(entity(tags=["meeting"]), q)
        assert not matches(entity(tags=[]), q)

    def test_inclusive_date_bounds(self):
        q = ListQuery(date_from=date(2024, 1, 1), date_to=date(2024, 1, 31))
        assert matches(entity(day=date(2024, 1, 1)), q)
        assert matches(entity(day=date(2024, 1, 31)), q)
        assert not matches(entity(day=date(2023, 12, 31)), q)
        assert not matches(entity(day=date(2024, 2, 1)), q)

    def test_apply_sorts_pages_and_counts(self):
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        items = [
            entity(title=f"u{i}", day=date(2024, 1, 1 + i % 3), created=base + timedelta(minutes=i))
            for i in range(7)
        ]
        page, total = apply(items, ListQuery(limit=3))
        assert total == 7
        # u2 and u5 share the latest date; newer createdAt first
        assert [e["title"] for e in page] == ["u5", "u2", "u4"]

        page, _ = apply(items, ListQuery(limit=3, page=3))
        assert [e["title"] for e in page] == ["u0"]

    def test_apply_ascending(self):
        items = [entity(title=t) for t in ("b", "c", "a")]
        page, _ = apply(items, ListQuery(sort_by="title", descending=False))
        assert [e["title"] for e in page] == ["a", "b", "c"]
