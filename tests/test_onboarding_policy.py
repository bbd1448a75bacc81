from datetime import date

import pytest

from app.core.exceptions import NotFoundError, StateConflictError, ValidationError
from app.models.employee import Employee
from app.models.leave_balance import LeaveBalance
from app.services import leave_service, onboarding_policy_service as onboarding
from app.services.leave_ledger import LeaveLedger


@pytest.fixture
def new_hire(make_employee, seed_balances):
    employee = make_employee(status="probation", date_of_joining=date(2025, 1, 1), base_salary=60000)
    seed_balances(employee, 2025)
    return employee


@pytest.fixture
def state(db_session, new_hire):
    return onboarding.create_onboarding_state(db_session, new_hire.id, date(2025, 1, 1), first_month_sales_target=10)


def test_timers_are_derived_from_policy(state):
    assert state.training_end_date == date(2025, 1, 11)
    assert state.first_month_end_date == date(2025, 2, 10)
    assert state.probation_end_date == date(2025, 4, 1)
    assert state.bond_months == 6
    assert state.bond_amount == 360000
    assert state.first_month_penalty_applied is False


def test_duplicate_state_is_a_conflict(db_session, state, new_hire):
    with pytest.raises(StateConflictError):
        onboarding.create_onboarding_state(db_session, new_hire.id, date(2025, 1, 1))


def test_state_for_unknown_employee(db_session):
    with pytest.raises(NotFoundError):
        onboarding.create_onboarding_state(db_session, 9999, date(2025, 1, 1))


@pytest.mark.parametrize("today, expected", [
    (date(2025, 1, 5), {"in_training": True, "in_first_month": False, "probation_due": False}),
    (date(2025, 1, 20), {"in_training": False, "in_first_month": True, "probation_due": False}),
    (date(2025, 4, 2), {"in_training": False, "in_first_month": False, "probation_due": True}),
])
def test_status_view(state, today, expected):
    status = onboarding.evaluate_onboarding_status(state, today)
    assert {k: getattr(status, k) for k in expected} == expected
    assert status.bond_active is True


def test_bond_ends_after_six_months(state):
    assert onboarding.evaluate_onboarding_status(state, date(2025, 7, 1)).bond_active is False


def test_penalty_applies_once_and_is_stable_for_its_period(db_session, state, new_hire):
    amount = onboarding.apply_first_month_penalty_if_due(db_session, new_hire.id, date(2025, 2, 28))
    assert amount == 30000
    assert state.first_month_penalty_applied is True
    assert state.first_month_penalty_period_end == date(2025, 2, 28)

    # Recomputing the same period reproduces the amount; later periods get nothing
    assert onboarding.apply_first_month_penalty_if_due(db_session, new_hire.id, date(2025, 2, 28)) == 30000
    assert onboarding.apply_first_month_penalty_if_due(db_session, new_hire.id, date(2025, 3, 31)) == 0


def test_penalty_not_due_before_first_month_ends(db_session, state, new_hire):
    assert onboarding.apply_first_month_penalty_if_due(db_session, new_hire.id, date(2025, 1, 31)) == 0
    assert state.first_month_penalty_applied is False


def test_no_penalty_when_sales_were_made(db_session, state, new_hire):
    onboarding.record_first_month_sales(db_session, new_hire.id, 3)
    assert onboarding.apply_first_month_penalty_if_due(db_session, new_hire.id, date(2025, 2, 28)) == 0


def test_no_state_means_no_penalty(db_session, new_hire):
    assert onboarding.apply_first_month_penalty_if_due(db_session, new_hire.id, date(2025, 2, 28)) == 0


def test_negative_sales_rejected(db_session, state, new_hire):
    with pytest.raises(ValidationError):
        onboarding.record_first_month_sales(db_session, new_hire.id, -1)


def test_complete_probation_reseeds_balances(db_session, state, new_hire):
    casual, _ = leave_service.submit_leave_application(
        db_session, new_hire.id, "CL", date(2025, 3, 3), date(2025, 3, 3), today=date(2025, 2, 20)
    )
    leave_service.approve_leave_application(db_session, casual.id, approver_id=1)

    completed = onboarding.complete_probation(db_session, new_hire.id, today=date(2025, 4, 2))

    assert completed.is_probation_complete is True
    assert completed.probation_completed_on == date(2025, 4, 2)
    assert db_session.get(Employee, new_hire.id).employment_status == "permanent"

    balances = {b.leave_type: b for b in LeaveLedger(db_session).list_balances(new_hire.id, 2025)}
    assert {"EL", "ML", "MAR", "PL", "CO"} <= set(balances)
    assert (balances["CL"].used_days, balances["CL"].remaining_days) == (0, 12)
    assert balances["EL"].remaining_days == 12


def test_probation_completes_once_and_freezes_state(db_session, state, new_hire):
    onboarding.complete_probation(db_session, new_hire.id, today=date(2025, 4, 2))

    with pytest.raises(StateConflictError):
        onboarding.complete_probation(db_session, new_hire.id, today=date(2025, 4, 3))
    with pytest.raises(StateConflictError):
        onboarding.record_first_month_sales(db_session, new_hire.id, 5)


def test_complete_probation_without_state(db_session, new_hire):
    with pytest.raises(NotFoundError):
        onboarding.complete_probation(db_session, new_hire.id)


def test_onboarding_api(client, new_hire):
    response = client.post("/api/onboarding/policy", json={
        "employee_id": new_hire.id,
        "training_start_date": "2025-01-01",
    })
    assert response.status_code == 201
    assert response.json()["first_month_end_date"] == "2025-02-10"

    detail = client.get(f"/api/onboarding/policy/{new_hire.id}", params={"as_of": "2025-01-20"}).json()
    assert detail["status"]["in_first_month"] is True

    response = client.post(f"/api/onboarding/policy/{new_hire.id}/sales", json={"amount": 2})
    assert response.json()["first_month_sales_achieved"] == 2

    response = client.post(
        f"/api/onboarding/policy/{new_hire.id}/complete-probation", json={"completed_on": "2025-04-02"}
    )
    assert response.status_code == 200
    assert response.json()["policy"]["is_probation_complete"] is True

    response = client.post(f"/api/onboarding/policy/{new_hire.id}/complete-probation")
    assert response.status_code == 409

    response = client.post(f"/api/onboarding/policy/{new_hire.id}/sales", json={"amount": 4})
    assert response.status_code == 409
