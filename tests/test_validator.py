from datetime import datetime, timedelta, timezone

from jobingest.schemas.jobs import CompanyRef, JobDTO, LocationInfo, SalaryInfo
from jobingest.services.validator import JobValidator

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def test_validate_accepts_complete_record() -> None:
    result = JobValidator().validate(_dto(), now=NOW)

    assert result.ok is True
    assert result.errors == []


def test_validate_collects_every_violation_without_short_circuit() -> None:
    dto = JobDTO(
        source="indeed",
        title="   ",
        company=None,
        location=LocationInfo(city="Pune"),
        salary=SalaryInfo(min=200, max=100),
        posted_at=None,
    )

    result = JobValidator().validate(dto, now=NOW)

    assert result.ok is False
    assert [issue.code for issue in result.errors] == [
        "TITLE_REQUIRED",
        "COMPANY_REQUIRED",
        "LOCATION_REQUIRED",
        "POSTED_AT_REQUIRED",
        "SALARY_RANGE_INVALID",
    ]
    assert {issue.field for issue in result.errors} == {"title", "company.name", "location", "posted_at", "salary"}


def test_validate_rejects_posted_at_one_second_in_future() -> None:
    result = JobValidator().validate(_dto(posted_at=NOW + timedelta(seconds=1)), now=NOW)

    assert result.ok is False
    assert [(issue.code, issue.field) for issue in result.errors] == [("POSTED_AT_FUTURE", "posted_at")]


def test_validate_rejects_expiry_before_posting() -> None:
    result = JobValidator().validate(
        _dto(posted_at=NOW - timedelta(days=1), expires_at=NOW - timedelta(days=2)),
        now=NOW,
    )

    assert [issue.code for issue in result.errors] == ["EXPIRES_AT_LT_POSTED"]


def test_validate_accepts_remote_type_without_country() -> None:
    result = JobValidator().validate(_dto(location=LocationInfo(remote_type="remote")), now=NOW)

    assert result.ok is True


def test_validate_accepts_equal_salary_bounds_and_naive_timestamps() -> None:
    naive_posted_at = (NOW - timedelta(hours=1)).replace(tzinfo=None)

    result = JobValidator().validate(
        _dto(salary=SalaryInfo(min=100, max=100), posted_at=naive_posted_at),
        now=NOW,
    )

    assert result.ok is True


def _dto(**overrides: object) -> JobDTO:
    payload: dict[str, object] = {
        "source": "indeed",
        "external_id": "ind-1",
        "title": "Backend Engineer",
        "company": CompanyRef(name="Acme"),
        "location": LocationInfo(city="Pune", country="IN"),
        "posted_at": NOW - timedelta(days=2),
    }
    payload.update(overrides)
    return JobDTO(**payload)
