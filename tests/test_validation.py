from datetime import date

import pytest
from pydantic import ValidationError

from conftest import make_payload
from worklog_api.models import Priority, Status, Tag
from worklog_api.schemas import UpdatePayload, parse_calendar_date

URL = "/api/updates"


def errors_for(data):
    with pytest.raises(ValidationError) as info:
        UpdatePayload.model_validate(data)
    return {".".join(str(p) for p in e["loc"]): e for e in info.value.errors()}


class TestUpdatePayload:
    def test_valid_payload_with_defaults(self):
        p = UpdatePayload.model_validate(make_payload())
        assert p.tags == []
        assert p.date is None
        assert p.priority is Priority.MEDIUM
        assert p.status is Status.COMPLETED
        assert p.user_id is None

    def test_camel_case_user_id(self):
        p = UpdatePayload.model_validate(make_payload(userId="u1"))
        assert p.user_id == "u1"

    @pytest.mark.parametrize("value", ["00:00", "9:05", "09:05", "19:59", "23:59"])
    def test_time_accepts_24_hour_clock(self, value):
        assert UpdatePayload.model_validate(make_payload(time=value)).time == value

    @pytest.mark.parametrize("value", ["25:00", "24:00", "12:60", "1230", "noon", "12:5", ""])
    def test_time_rejects_invalid(self, value):
        errs = errors_for(make_payload(time=value))
        assert "Time must be in HH:MM format" in errs["time"]["msg"]

    def test_title_and_description_bounds_apply_after_trimming(self):
        p = UpdatePayload.model_validate(
            make_payload(title=" " + "t" * 200 + " ", description="  " + "d" * 2000 + "  ")
        )
        assert len(p.title) == 200
        assert len(p.description) == 2000

        errs = errors_for(make_payload(title="t" * 201, description="d" * 2001))
        assert "between 1 and 200" in errs["title"]["msg"]
        assert "between 1 and 2000" in errs["description"]["msg"]

    def test_blank_title_rejected(self):
        errs = errors_for(make_payload(title="   "))
        assert "Title must be between 1 and 200 characters" in errs["title"]["msg"]

    def test_required_fields(self):
        errs = errors_for({})
        assert set(errs) == {"title", "description", "time"}
        assert all(e["type"] == "missing" for e in errs.values())

    def test_tags_are_lowercased_into_the_enum(self):
        p = UpdatePayload.model_validate(make_payload(tags=["Code", "BUG-FIX", " review "]))
        assert p.tags == [Tag.CODE, Tag.BUG_FIX, Tag.REVIEW]

    def test_tags_must_be_a_list(self):
        errs = errors_for(make_payload(tags="code"))
        assert "Tags must be an array" in errs["tags"]["msg"]

    def test_unknown_tag_rejected(self):
        errs = errors_for(make_payload(tags=["code", "coffee"]))
        assert "tags.1" in errs

    def test_enums(self):
        errs = errors_for(make_payload(priority="urgent", status="done"))
        assert "Priority must be low, medium, or high" in errs["priority"]["msg"]
        assert "Status must be completed, in-progress, blocked, or cancelled" in errs["status"]["msg"]

    def test_date_parsing(self):
        assert UpdatePayload.model_validate(make_payload(date="2024-02-29")).date == date(2024, 2, 29)
        assert UpdatePayload.model_validate(
            make_payload(date="2024-02-29T23:30:00.000Z")
        ).date == date(2024, 2, 29)
        errs = errors_for(make_payload(date="2024-02-30"))
        assert "Date must be a valid ISO 8601 date" in errs["date"]["msg"]


class TestParseCalendarDate:
    def test_accepts_date_and_datetime_strings(self):
        assert parse_calendar_date("2024-01-31") == date(2024, 1, 31)
        assert parse_calendar_date("2024-01-31T08:00:00+02:00") == date(2024, 1, 31)
        assert parse_calendar_date(date(2024, 1, 31)) == date(2024, 1, 31)

    @pytest.mark.parametrize("value", ["", "31/01/2024", "tomorrow", 20240131, None])
    def test_rejects_everything_else(self, value):
        with pytest.raises(ValueError):
            parse_calendar_date(value)


class TestValidationEnvelope:
    def test_invalid_time_rejected_before_any_write(self, client, repo):
        res = client.post(URL, json=make_payload(time="25:00"))
        assert res.status_code == 400
        body = res.json()
        assert body["message"] == "Validation failed"
        assert body["errors"] == [
            {
                "type": "field",
                "location": "body",
                "path": "time",
                "msg": "Time must be in HH:MM format",
                "value": "25:00",
            }
        ]
        assert repo.count() == 0

    def test_all_violations_reported_together(self, client):
        res = client.post(URL, json={"tags": "code", "priority": "urgent"})
        assert res.status_code == 400
        paths = {e["path"] for e in res.json()["errors"]}
        assert paths == {"title", "description", "time", "tags", "priority"}

    def test_update_requires_time(self, client):
        created = client.post(URL, json=make_payload()).json()
        res = client.put(
            f"{URL}/{created['id']}",
            json={"title": "Only the title", "description": "and description"},
        )
        assert res.status_code == 400
        assert [e["path"] for e in res.json()["errors"]] == ["time"]
        assert client.get(f"{URL}/{created['id']}").json()["title"] == created["title"]

    def test_malformed_json_body(self, client):
        res = client.post(URL, content="{not json", headers={"Content-Type": "application/json"})
        assert res.status_code == 400
        assert res.json()["message"] == "Validation failed"
