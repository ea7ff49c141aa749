from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from tageskasse.models.base import SessionLocal
from tageskasse.models.entities import DailyEntry
from tageskasse.models.user import User, UserProfile
from tageskasse.services import entries
from tageskasse.services.errors import AuthorizationError, NotFoundError, ValidationError


def _amounts(cash=0, network=0, purchases=0, advance=0, notes=""):
    return {
        "cash_amount": cash,
        "network_amount": network,
        "purchases_amount": purchases,
        "advance_amount": advance,
        "notes": notes,
    }


def test_totals_example(db, plain_user) -> None:
    saved = entries.upsert_entry(db, plain_user, "2025-03-04", _amounts(100, 50, 30))
    assert saved["total"] == 150
    assert saved["remaining"] == 120


@pytest.mark.parametrize(
    "cash,network,purchases",
    [("0", "0", "0"), ("10.50", "0.25", "20"), ("1234.56", "0.44", "2000")],
)
def test_totals_match_arithmetic(cash, network, purchases) -> None:
    a, b, c = Decimal(cash), Decimal(network), Decimal(purchases)
    t = entries.compute_totals(a, b, c)
    assert t.total == a + b
    assert t.remaining == a + b - c


def test_upsert_is_idempotent(db, plain_user) -> None:
    payload = _amounts(100, 50, 30, 5, "Schicht A")
    first = entries.upsert_entry(db, plain_user, "2025-03-04", payload)
    second = entries.upsert_entry(db, plain_user, "2025-03-04", payload)

    assert first["id"] == second["id"]
    rows = db.query(DailyEntry).filter(DailyEntry.user_id == plain_user.id).all()
    assert len(rows) == 1
    assert second["notes"] == "Schicht A"
    assert second["advance_amount"] == 5


def test_upsert_updates_in_place(db, plain_user) -> None:
    entries.upsert_entry(db, plain_user, "2025-03-04", _amounts(100, 50, 30))
    updated = entries.upsert_entry(db, plain_user, "2025-03-04", _amounts(10, 0, 0))
    assert updated["total"] == 10
    assert db.query(DailyEntry).count() == 1


def test_upsert_rejects_negative_without_writing(db, plain_user) -> None:
    with pytest.raises(ValidationError):
        entries.upsert_entry(db, plain_user, "2025-03-04", _amounts(100, -1, 0))
    assert db.query(DailyEntry).count() == 0


def test_upsert_rejects_bad_date(db, plain_user) -> None:
    with pytest.raises(ValidationError):
        entries.upsert_entry(db, plain_user, "2025-02-30", _amounts(1))


def test_self_cannot_write_for_others(db, admin_user, plain_user) -> None:
    with pytest.raises(AuthorizationError):
        entries.upsert_entry(db, plain_user, "2025-03-04", _amounts(1), target_user_id=admin_user.id)


def test_admin_writes_for_others(db, admin_user, plain_user) -> None:
    saved = entries.upsert_entry(db, admin_user, "2025-03-04", _amounts(7), target_user_id=plain_user.id)
    assert saved["user_id"] == plain_user.id


def test_admin_target_without_profile(db, admin_user, make_user) -> None:
    ghost = make_user(with_profile=False)
    with pytest.raises(NotFoundError):
        entries.upsert_entry(db, admin_user, "2025-03-04", _amounts(7), target_user_id=ghost.id)


def test_user_without_profile_cannot_write(db, admin_user, make_user) -> None:
    fresh = make_user(with_profile=False)
    with pytest.raises(NotFoundError):
        entries.upsert_entry(db, fresh, "2025-03-04", _amounts(7))


def test_monthly_advances_exclude_other_months(db, admin_user, plain_user) -> None:
    entries.upsert_entry(db, plain_user, "2025-03-01", _amounts(advance=20))
    entries.upsert_entry(db, plain_user, "2025-03-31", _amounts(advance="12,50"))
    entries.upsert_entry(db, plain_user, "2025-04-01", _amounts(advance=99))
    entries.upsert_entry(db, plain_user, "2025-02-28", _amounts(advance=99))
    entries.upsert_entry(db, admin_user, "2025-03-15", _amounts(advance=99))

    assert entries.monthly_advances(db, plain_user, "2025-03") == Decimal("32.50")
    assert entries.monthly_advances(db, plain_user, "2025-05") == Decimal("0.00")
    assert entries.monthly_advances(db, admin_user, "2025-03", plain_user.id) == Decimal("32.50")


def test_monthly_advances_of_others_forbidden(db, admin_user, plain_user) -> None:
    with pytest.raises(AuthorizationError):
        entries.monthly_advances(db, plain_user, "2025-03", admin_user.id)


def test_delete_entry_admin_only(db, admin_user, plain_user) -> None:
    saved = entries.upsert_entry(db, plain_user, "2025-03-04", _amounts(1))
    with pytest.raises(AuthorizationError):
        entries.delete_entry(db, plain_user, saved["id"])
    entries.delete_entry(db, admin_user, saved["id"])
    assert db.query(DailyEntry).count() == 0
    with pytest.raises(NotFoundError):
        entries.delete_entry(db, admin_user, saved["id"])


def test_day_view_without_entry(db, plain_user) -> None:
    view = entries.day_view(db, plain_user, "2025-03-04")
    assert view["entry"] is None
    assert view["total"] == 0
    assert view["username"] == "mitarbeiter"


def test_month_view_hides_revenue_for_non_admin(db, admin_user, plain_user) -> None:
    entries.upsert_entry(db, plain_user, "2025-03-04", _amounts(100, 50, 30, 10))
    entries.upsert_entry(db, plain_user, "2025-03-05", _amounts(1, 1, 0, 0))

    own = entries.month_view(db, plain_user, 2025, 3)
    assert own["entry_count"] == 2
    assert own["days"] == ["2025-03-04", "2025-03-05"]
    assert own["monthly_advances"] == 10
    assert "revenue_total" not in own

    seen_by_admin = entries.month_view(db, admin_user, 2025, 3, plain_user.id)
    assert seen_by_admin["revenue_total"] == 152
    assert len(seen_by_admin["entries"]) == 2


def test_year_overview(db, plain_user) -> None:
    entries.upsert_entry(db, plain_user, "2025-01-10", _amounts(100, 50, 30, 5))
    entries.upsert_entry(db, plain_user, "2025-01-11", _amounts(10, 0, 0, 0))
    entries.upsert_entry(db, plain_user, "2025-12-31", _amounts(1, 0, 0, 0))
    entries.upsert_entry(db, plain_user, "2026-01-01", _amounts(1000, 0, 0, 0))

    months = entries.year_overview(db, plain_user, 2025)["months"]
    assert len(months) == 12
    assert months[0] == {"month": 1, "entry_count": 2, "revenue": 160.0, "purchases": 30.0,
                         "remaining": 130.0, "advances": 5.0}
    assert months[11]["revenue"] == 1.0
    assert months[5]["entry_count"] == 0


def test_list_entries_by_month(db, plain_user) -> None:
    entries.upsert_entry(db, plain_user, "2025-03-04", _amounts(1))
    entries.upsert_entry(db, plain_user, "2025-04-04", _amounts(1))
    assert [e["date"] for e in entries.list_entries(db, plain_user, year=2025, month=4)] == ["2025-04-04"]
    assert len(entries.list_entries(db, plain_user)) == 2


def test_upsert_rejects_amount_beyond_column(db, plain_user) -> None:
    with pytest.raises(ValidationError):
        entries.upsert_entry(db, plain_user, "2025-03-04", _amounts(cash="123456789012345678.99"))
    assert db.query(DailyEntry).count() == 0


def _conflict():
    return IntegrityError("INSERT INTO daily_entries", {}, Exception("UNIQUE constraint failed"))


def test_upsert_conflict_twice_is_validation_error(db, plain_user, monkeypatch) -> None:
    def _commit():
        raise _conflict()

    monkeypatch.setattr(db, "commit", _commit)
    with pytest.raises(ValidationError):
        entries.upsert_entry(db, plain_user, "2025-03-04", _amounts(1))
    assert db.query(DailyEntry).count() == 0


def test_upsert_target_deleted_meanwhile(db, admin_user, plain_user, monkeypatch) -> None:
    target_id = plain_user.id

    def _commit():
        # anderer Request loescht den Ziel-Benutzer
        with SessionLocal() as other:
            other.query(UserProfile).filter(UserProfile.user_id == target_id).delete()
            other.query(User).filter(User.id == target_id).delete()
            other.commit()
        raise _conflict()

    monkeypatch.setattr(db, "commit", _commit)
    with pytest.raises(NotFoundError):
        entries.upsert_entry(db, admin_user, "2025-03-04", _amounts(1), target_user_id=target_id)
